"""handlers/__init__.py — re-export handler classes for convenience."""
from .argo_parameter import ArgoParameterHandler
from .argo_template import ArgoTemplateHandler
from .chart_variable import ChartVariableHandler
from .configmap import ConfigMapHandler
from .go_keyword import GoKeywordHandler
from .helm_function import HelmFunctionHandler
from .helm_template import HelmTemplateHandler
from .helm_values import HelmValuesHandler
from .item_variable import ItemVariableHandler
from .release_capabilities import ReleaseCapabilitiesHandler
from .rendered_template_ref import RenderedTemplateRefHandler
from .workflow_variable import WorkflowVariableHandler

__all__ = [
    'ArgoParameterHandler', 'ArgoTemplateHandler', 'ChartVariableHandler', 'ConfigMapHandler',
    'GoKeywordHandler', 'HelmFunctionHandler', 'HelmTemplateHandler', 'HelmValuesHandler',
    'ItemVariableHandler', 'ReleaseCapabilitiesHandler', 'RenderedTemplateRefHandler',
    'WorkflowVariableHandler',
]
