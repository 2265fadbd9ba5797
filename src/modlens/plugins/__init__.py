from modlens.plugins.header_parser import (
    InvalidSignatureError,
    NotAPluginError,
    PluginTooLargeError,
    decode_plugin_header,
    is_plugin_file,
    parse_plugin_file,
)
from modlens.plugins.reader import ByteReader, PluginDecodeError, TruncatedPluginError

__all__ = [
    "ByteReader",
    "InvalidSignatureError",
    "NotAPluginError",
    "PluginDecodeError",
    "PluginTooLargeError",
    "TruncatedPluginError",
    "decode_plugin_header",
    "is_plugin_file",
    "parse_plugin_file",
]
