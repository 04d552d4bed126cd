"""Reference detectors: pure text → located occurrence functions, one module per expression kind."""
