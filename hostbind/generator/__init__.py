"""Host API binding generator."""

from .emitter import BindingEmitter as BindingEmitter
from .emitter import GeneratorOptions as GeneratorOptions
from .emitter import generate as generate
from .emitter import write_output as write_output
from .errors import *
from .parser import load as load
from .parser import loads as loads
from .parser import parse_type_ref as parse_type_ref
from .profile import BASELINE_CLASSES as BASELINE_CLASSES
from .profile import apply as apply
from .profile import compute_closure as compute_closure
from .profile import load_profile as load_profile
from .resolver import Category as Category
from .resolver import ResolvedType as ResolvedType
from .resolver import TypeResolver as TypeResolver
from .resolver import check_precision as check_precision
from .sizes import LayoutInfo as LayoutInfo
from .sizes import calculate_layouts as calculate_layouts
from .types import *
from .virtuals import VirtualRegistration as VirtualRegistration
from .virtuals import collect_registrations as collect_registrations
