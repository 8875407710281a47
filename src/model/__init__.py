"""Model classes for ajail."""

from model.directive import Directive, DirectiveKind, DirectiveSource
from model.binding import Binding, BindingMode
from model.rootfs import RootFsReference
from model.identity import IdentityMapping
from model.jail_config import JailConfig

__all__ = [
    "Directive",
    "DirectiveKind",
    "DirectiveSource",
    "Binding",
    "BindingMode",
    "RootFsReference",
    "IdentityMapping",
    "JailConfig",
]
