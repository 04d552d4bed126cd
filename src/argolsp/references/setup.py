"""
Registry construction.

Guards, highest priority first:

``helm``
    Documents inside a chart's ``templates/`` directory (or with language
    id ``helm``).  Values, named templates, Argo references in rendered
    output, the ``.Chart``/``.Release``/``.Capabilities`` built-ins, Go template
    keywords and Helm/Sprig functions.
``argo``
    Argo ``Workflow``/``WorkflowTemplate``/``ClusterWorkflowTemplate``/
    ``CronWorkflow`` documents that are not Helm templates.
``configMap``
    Any other non-Helm YAML: only ConfigMap/Secret references.

Within a guard the handler order decides which handler claims a position
first; ConfigMap references sit ahead of template references so that a
``name:`` under ``configMapKeyRef`` is never read as a template name.
"""
from __future__ import annotations

from argolsp.detection import ChartMarkerCache, is_argo_workflow_document, is_helm_template
from argolsp.references.handlers import (
    ArgoParameterHandler, ArgoTemplateHandler, ChartVariableHandler, ConfigMapHandler, GoKeywordHandler,
    HelmFunctionHandler, HelmTemplateHandler, HelmValuesHandler, ItemVariableHandler,
    ReleaseCapabilitiesHandler, RenderedTemplateRefHandler, WorkflowVariableHandler,
)
from argolsp.references.registry import DocumentGuard, ReferenceRegistry
from argolsp.services.chart_index import HelmChartIndex
from argolsp.services.configmap_index import ConfigMapIndex
from argolsp.services.helm_template_index import HelmTemplateIndex
from argolsp.services.rendered_index import RenderedArgoIndexCache
from argolsp.services.template_index import ArgoTemplateIndex
from argolsp.services.values_index import ValuesIndex


def _argo_handlers(template_index: ArgoTemplateIndex, configmap_index: ConfigMapIndex) -> list:
    return [
        ConfigMapHandler(configmap_index),
        ArgoTemplateHandler(template_index),
        ArgoParameterHandler(),
        WorkflowVariableHandler(),
        ItemVariableHandler(),
    ]


def create_reference_registry(template_index: ArgoTemplateIndex,
                              configmap_index: ConfigMapIndex,
                              chart_index: HelmChartIndex,
                              values_index: ValuesIndex,
                              helm_template_index: HelmTemplateIndex,
                              rendered_index: RenderedArgoIndexCache | None = None,
                              marker_cache: ChartMarkerCache | None = None) -> ReferenceRegistry:
    """The full workspace registry (Helm, Argo and plain ConfigMap guards)."""
    if marker_cache is None:
        marker_cache = ChartMarkerCache()

    def _is_helm(doc) -> bool:
        return is_helm_template(doc, marker_cache)

    helm = DocumentGuard('helm', _is_helm, [
        HelmValuesHandler(chart_index, values_index),
        HelmTemplateHandler(chart_index, helm_template_index),
        RenderedTemplateRefHandler(chart_index, template_index, rendered_index),
        ChartVariableHandler(chart_index),
        ReleaseCapabilitiesHandler(),
        GoKeywordHandler(),
        HelmFunctionHandler(),
    ])
    argo = DocumentGuard(
        'argo',
        lambda doc: is_argo_workflow_document(doc) and not _is_helm(doc),
        _argo_handlers(template_index, configmap_index),
    )
    configmap = DocumentGuard('configMap', lambda doc: not _is_helm(doc), [ConfigMapHandler(configmap_index)])
    return ReferenceRegistry([helm, argo, configmap])


def create_argo_only_registry(template_index: ArgoTemplateIndex,
                              configmap_index: ConfigMapIndex | None = None) -> ReferenceRegistry:
    """Registry for rendered chart output, where nothing is a Helm template any more."""
    if configmap_index is None:
        configmap_index = ConfigMapIndex()
    argo = DocumentGuard('argo', is_argo_workflow_document, _argo_handlers(template_index, configmap_index))
    configmap = DocumentGuard('configMap', lambda doc: True, [ConfigMapHandler(configmap_index)])
    return ReferenceRegistry([argo, configmap])
