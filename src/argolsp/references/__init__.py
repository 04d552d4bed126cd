"""Reference handlers, the guard-ordered registry and its factory (:mod:`argolsp.references.setup`)."""
