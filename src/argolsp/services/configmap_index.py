"""
Workspace index of ConfigMap and Secret resources.

ConfigMaps and Secrets live in separate namespaces, so a ConfigMap and a
Secret may share a name without shadowing each other.
"""
from __future__ import annotations

import logging

from argolsp.document import read_document
from argolsp.features.configmaps import ConfigMapDefinition, KeyDefinition, find_configmap_definitions
from argolsp.services.scanner import find_yaml_files

logger = logging.getLogger(__name__)

KINDS = ('ConfigMap', 'Secret')


class ConfigMapIndex:

    def __init__(self):
        self._by_uri: dict[str, list[ConfigMapDefinition]] = {}
        self._index: dict[str, dict[str, ConfigMapDefinition]] = {kind: {} for kind in KINDS}

    def __len__(self) -> int:
        return sum(len(v) for v in self._index.values())

    def initialize(self, roots: list[str]) -> None:
        for root in roots:
            for uri in find_yaml_files(root):
                self.update_file(uri)
        logger.info('ConfigMapIndex: %d ConfigMaps, %d Secrets indexed',
                    len(self._index['ConfigMap']), len(self._index['Secret']))

    def clear(self) -> None:
        self._by_uri.clear()
        for names in self._index.values():
            names.clear()

    def update_file(self, uri: str, text: str | None = None) -> None:
        if text is None:
            doc = read_document(uri)
            if doc is None:
                self.remove_file(uri)
                return
            text = doc.source
        try:
            definitions = find_configmap_definitions(text.splitlines(), uri)
        except Exception:
            logger.warning('ConfigMapIndex: failed to scan %s', uri, exc_info=True)
            definitions = []
        self._replace(uri, definitions)

    def remove_file(self, uri: str) -> None:
        if uri in self._by_uri:
            self._replace(uri, [])
            logger.debug('ConfigMapIndex: removed %s', uri)

    def _replace(self, uri: str, definitions: list[ConfigMapDefinition]) -> None:
        stale = {(d.kind, d.name) for d in self._by_uri.get(uri, [])}
        if definitions:
            self._by_uri[uri] = definitions
        else:
            self._by_uri.pop(uri, None)
        for kind, name in stale | {(d.kind, d.name) for d in definitions}:
            self._rebuild(kind, name)

    def _rebuild(self, kind: str, name: str) -> None:
        for uri in sorted(self._by_uri):
            for d in self._by_uri[uri]:
                if d.kind == kind and d.name == name:
                    self._index[kind][name] = d
                    return
        self._index[kind].pop(name, None)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_configmap(self, name: str, kind: str = 'ConfigMap') -> ConfigMapDefinition | None:
        return self._index.get(kind, {}).get(name)

    def find_key(self, name: str, key: str, kind: str = 'ConfigMap') -> KeyDefinition | None:
        definition = self.find_configmap(name, kind)
        return definition.find_key(key) if definition is not None else None

    def get_keys(self, name: str, kind: str = 'ConfigMap') -> list[str]:
        definition = self.find_configmap(name, kind)
        return [k.key for k in definition.keys] if definition is not None else []

    def get_all(self, kind: str | None = None) -> list[ConfigMapDefinition]:
        kinds = (kind,) if kind else KINDS
        return [d for k in kinds for d in self._index.get(k, {}).values()]
