"""argolsp: a language server for Argo Workflows manifests and the Helm charts that template them."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version('argolsp')
except PackageNotFoundError:  # source checkout that was never installed
    __version__ = '0.0.0.dev0'
