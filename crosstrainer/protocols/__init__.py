"""Wire protocols spoken by elliptical trainers.

Each protocol is a :class:`ProtocolAdapter`; the pure ``decode_*`` and
``encode_*`` functions can be used without a connection.
"""

from ._base import ProtocolAdapter, TelemetrySink, bt16
from ._codec import (
    checksum8,
    ensure_available,
    is_bit_set,
    read_sint16,
    read_uint8,
    read_uint16,
    read_uint24,
)
from ._ftms import (
    CROSS_TRAINER_FIELD_SIZES,
    FTMS_VARIANTS,
    ControlPointOpcode,
    CrossTrainerFlag,
    FtmsAdapter,
    FtmsVariant,
    cross_trainer_frame_length,
    decode_cross_trainer_data,
    encode_set_target_resistance,
)
from ._huantong import HuanTongAdapter, decode_huantong_data, encode_huantong_resistance
from ._registry import (
    ADAPTER_PRIORITY,
    DISCOVERY_SERVICE_UUIDS,
    create_adapters,
    select_adapter,
)
from ._sample import WorkoutSample
from ._vendor_v1 import (
    VendorV1Adapter,
    decode_v1_control,
    decode_v1_data,
    encode_v1_resistance,
)
from ._vendor_v2 import VendorV2Adapter, decode_v2_data, encode_v2_resistance

__all__ = [
    "ADAPTER_PRIORITY",
    "CROSS_TRAINER_FIELD_SIZES",
    "DISCOVERY_SERVICE_UUIDS",
    "FTMS_VARIANTS",
    "ControlPointOpcode",
    "CrossTrainerFlag",
    "FtmsAdapter",
    "FtmsVariant",
    "HuanTongAdapter",
    "ProtocolAdapter",
    "TelemetrySink",
    "VendorV1Adapter",
    "VendorV2Adapter",
    "WorkoutSample",
    "bt16",
    "checksum8",
    "create_adapters",
    "cross_trainer_frame_length",
    "decode_cross_trainer_data",
    "decode_huantong_data",
    "decode_v1_control",
    "decode_v1_data",
    "decode_v2_data",
    "encode_huantong_resistance",
    "encode_set_target_resistance",
    "encode_v1_resistance",
    "encode_v2_resistance",
    "ensure_available",
    "is_bit_set",
    "read_sint16",
    "read_uint8",
    "read_uint16",
    "read_uint24",
    "select_adapter",
]
