"""
msgpack codec for transactions, receipts and logs.

msgpack integers stop at 64 bits while token amounts routinely exceed that,
so every int is carried as a signed big-endian ExtType.
"""
import msgpack

INT_EXT_CODE = 1


def _to_packable(obj):
    if isinstance(obj, bool) or obj is None:
        return obj
    if isinstance(obj, int):
        length = (obj.bit_length() + 8) // 8
        return msgpack.ExtType(INT_EXT_CODE, obj.to_bytes(length, 'big', signed=True))
    if isinstance(obj, dict):
        return {key: _to_packable(value) for key, value in sorted(obj.items())}
    if isinstance(obj, (list, tuple)):
        return [_to_packable(item) for item in obj]
    return obj


def _ext_hook(code: int, data: bytes):
    if code == INT_EXT_CODE:
        return int.from_bytes(data, 'big', signed=True)
    return msgpack.ExtType(code, data)


def pack(obj) -> bytes:
    """Canonical bytes for `obj`; dict keys are sorted."""
    return msgpack.packb(_to_packable(obj), use_bin_type=True)


def unpack(data: bytes):
    """Inverse of pack(). Tuples come back as lists."""
    return msgpack.unpackb(data, raw=False, ext_hook=_ext_hook, strict_map_key=False)
