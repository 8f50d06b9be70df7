"""Runtime support for generated host bindings.

Generated modules import this package as ``_rt``. Applications call
initialize() with an object implementing HostABI before using any binding.
"""

from .abi import BindKind as BindKind
from .abi import HostABI as HostABI
from .abi import HostNotInitialized as HostNotInitialized
from .abi import ResultSlot as ResultSlot
from .abi import RuntimeState as RuntimeState
from .abi import current as current
from .abi import initialize as initialize
from .abi import is_initialized as is_initialized
from .abi import register_teardown as register_teardown
from .abi import shutdown as shutdown
from .bindcache import BindCache as BindCache
from .bindcache import BindEntry as BindEntry
from .bindcache import BindState as BindState
from .bindcache import BindUnavailable as BindUnavailable
from .bindcache import IndexBind as IndexBind
from .bindcache import IndexKey as IndexKey
from .bindcache import MethodBind as MethodBind
from .bindcache import MethodKey as MethodKey
from .objects import ObjectBase as ObjectBase
from .objects import Ownership as Ownership
from .objects import RefCountedMixin as RefCountedMixin
from .objects import SingletonSlot as SingletonSlot
from .objects import call_virtual as call_virtual
from .objects import object_ptr as object_ptr
from .objects import wrap_object as wrap_object
from .registry import ClassDB as ClassDB
from .registry import DispatchTable as DispatchTable
from .registry import class_db as class_db
from .registry import dispatch as dispatch
from .values import ValueBase as ValueBase
from .values import coerce_scalar as coerce_scalar
from .values import decode_enum as decode_enum
from .values import nested_member as nested_member
from .values import scalar_member as scalar_member
from .values import to_variant as to_variant
from .values import value_ptr as value_ptr
from .values import wrap_value as wrap_value
