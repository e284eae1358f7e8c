"""Format-preserving editing and analysis of Maven multi-module source trees."""

from .cli import main
from .errors import PomTunerError
from .expressions import ActiveProfiles, ExpressionEvaluator
from .gav_set import GavSet
from .pom_models import Dependency, Ga, Gav, Gavtcs, Module, Profile
from .pom_parser import parse_pom
from .pom_transformer import PomTransformer, TransformationContext, transform_string
from .prod_excludes import ProdExcludesTask
from .source_tree import MavenSourceTree

__all__ = [
    "main",
    "PomTunerError",
    "ActiveProfiles",
    "ExpressionEvaluator",
    "GavSet",
    "Dependency",
    "Ga",
    "Gav",
    "Gavtcs",
    "Module",
    "Profile",
    "parse_pom",
    "PomTransformer",
    "TransformationContext",
    "transform_string",
    "ProdExcludesTask",
    "MavenSourceTree",
]
