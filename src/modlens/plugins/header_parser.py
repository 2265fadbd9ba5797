"""Parser for the TES4 header record of Bethesda plugin files (.esm/.esp/.esl).

Reads only the leading record and its subrecords to recover flags,
author, description and the ordered master list.  Record bodies past the
header are never touched.

Layout (little-endian):
  record header (24 B): signature[4] data_size:u32 flags:u32 form_id:u32
                        vc_info:u32 form_version:u16 unknown:u16
  subrecord:            type[4] size:u16 data[size]
  XXXX subrecord:       size:u32, overrides the size of the next subrecord

Format reference: https://en.uesp.net/wiki/Skyrim_Mod:Mod_File_Format/TES4
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path, PurePath

from modlens.constants import PLUGIN_EXTENSIONS
from modlens.plugins.reader import ByteReader, PluginDecodeError, TruncatedPluginError
from modlens.schemas.plugin import MasterFile, PluginFlags, PluginHeader, PluginType
from modlens.utils.paths import normalize_filename

HEADER_SIGNATURE = b"TES4"
RECORD_HEADER_SIZE = 24
SUBRECORD_HEADER_SIZE = 6
MAX_HEADER_RECORD_BYTES = 16 * 1024 * 1024  # TES4 records are a few KB in practice

FLAG_MASTER = 0x00000001
FLAG_LOCALIZED = 0x00000080
FLAG_LIGHT = 0x00000200

_RECORD_HEADER_FMT = "<4sIIIIHH"
_STRING_ENCODING = "cp1252"


class InvalidSignatureError(PluginDecodeError):
    pass


class NotAPluginError(PluginDecodeError):
    pass


class PluginTooLargeError(PluginDecodeError):
    pass


@dataclass(frozen=True, slots=True)
class RecordHeader:
    signature: bytes
    data_size: int
    flags: int
    form_id: int
    vc_info: int
    form_version: int


def is_plugin_file(filename: str) -> bool:
    return PurePath(filename).suffix.lower() in PLUGIN_EXTENSIONS


def parse_record_header(data: bytes) -> RecordHeader:
    """Parse and validate the fixed 24-byte record header."""
    if len(data) < RECORD_HEADER_SIZE:
        raise TruncatedPluginError(
            f"Record header too short: {len(data)} bytes, need {RECORD_HEADER_SIZE}"
        )
    signature, data_size, flags, form_id, vc_info, form_version, _unknown = struct.unpack_from(
        _RECORD_HEADER_FMT, data, 0
    )
    if any(b < 32 or b > 126 for b in signature):
        raise NotAPluginError(f"Non-printable record signature: {signature!r}")
    if signature != HEADER_SIGNATURE:
        raise InvalidSignatureError(f"Expected TES4 header record, got {signature!r}")
    return RecordHeader(
        signature=signature,
        data_size=data_size,
        flags=flags,
        form_id=form_id,
        vc_info=vc_info,
        form_version=form_version,
    )


def decode_flags(raw: int, filename: str) -> PluginFlags:
    """Decode the header flag bitmask.

    ``.esl`` files are always loaded as light masters and ``.esm`` files as
    masters, whatever their flag bits say.
    """
    ext = PurePath(filename).suffix.lower()
    return PluginFlags(
        is_master=bool(raw & FLAG_MASTER) or ext in (".esm", ".esl"),
        is_light=bool(raw & FLAG_LIGHT) or ext == ".esl",
        is_localized=bool(raw & FLAG_LOCALIZED),
    )


def determine_plugin_type(flags: PluginFlags, filename: str) -> PluginType:
    if flags.is_light:
        return PluginType.ESL
    if flags.is_master:
        return PluginType.ESM
    return plugin_type_from_filename(filename)


def plugin_type_from_filename(filename: str) -> PluginType:
    ext = PurePath(normalize_filename(filename)).suffix
    if ext == ".esm":
        return PluginType.ESM
    if ext == ".esl":
        return PluginType.ESL
    return PluginType.ESP


def _read_zstring(data: bytes) -> str:
    end = data.find(b"\x00")
    if end != -1:
        data = data[:end]
    return data.decode(_STRING_ENCODING, errors="replace")


def _parse_subrecords(body: bytes) -> tuple[list[MasterFile], str | None, str | None, int]:
    reader = ByteReader(body)
    masters: list[MasterFile] = []
    author: str | None = None
    description: str | None = None
    num_records = 0
    size_override: int | None = None

    while reader.remaining > 0:
        sub_type = reader.read(4, "subrecord type")
        sub_size = reader.read_u16("subrecord size")
        if size_override is not None:
            sub_size = size_override
            size_override = None
        sub_data = reader.read(sub_size, f"{sub_type!r} subrecord")

        if sub_type == b"XXXX":
            if len(sub_data) < 4:
                raise TruncatedPluginError("XXXX subrecord shorter than 4 bytes")
            size_override = struct.unpack_from("<I", sub_data, 0)[0]
        elif sub_type == b"HEDR":
            # float32 version, uint32 num_records, uint32 next_object_id
            if len(sub_data) >= 12:
                num_records = struct.unpack_from("<I", sub_data, 4)[0]
        elif sub_type == b"CNAM":
            author = _read_zstring(sub_data)
        elif sub_type == b"SNAM":
            description = _read_zstring(sub_data)
        elif sub_type == b"MAST":
            name = _read_zstring(sub_data)
            if name:
                masters.append(MasterFile(filename=name))
        elif sub_type == b"DATA":
            # uint64 size of the preceding MAST
            if len(sub_data) >= 8 and masters:
                size = struct.unpack_from("<Q", sub_data, 0)[0]
                masters[-1] = MasterFile(filename=masters[-1].filename, size=size)

    if size_override is not None:
        raise TruncatedPluginError("XXXX subrecord not followed by a subrecord")
    return masters, author, description, num_records


def decode_plugin_header(
    data: bytes,
    filename: str,
    *,
    max_record_bytes: int = MAX_HEADER_RECORD_BYTES,
) -> PluginHeader:
    """Decode the header of a plugin from its leading bytes.

    *data* must hold at least the full TES4 record; trailing bytes are
    ignored.  Raises a ``PluginDecodeError`` subclass for any malformed
    input.
    """
    record = parse_record_header(data)
    if record.data_size > max_record_bytes:
        raise PluginTooLargeError(
            f"Header record claims {record.data_size} bytes (limit {max_record_bytes})"
        )
    reader = ByteReader(data)
    reader.skip(RECORD_HEADER_SIZE, "record header")
    body = reader.read(record.data_size, "header record body")
    return _build_header(record, body, filename)


def parse_plugin_file(
    file_path: str | Path,
    *,
    max_record_bytes: int = MAX_HEADER_RECORD_BYTES,
) -> PluginHeader:
    """Read a plugin from disk and decode its header.

    Only the record header and its declared body are read.  The body size
    is checked against *max_record_bytes* before anything is allocated.
    ``OSError`` from opening the file propagates unchanged.
    """
    file_path = Path(file_path)
    with file_path.open("rb") as f:
        head = f.read(RECORD_HEADER_SIZE)
        record = parse_record_header(head)
        if record.data_size > max_record_bytes:
            raise PluginTooLargeError(
                f"Header record claims {record.data_size} bytes (limit {max_record_bytes})"
            )
        body = f.read(record.data_size)
    if len(body) < record.data_size:
        raise TruncatedPluginError(
            f"Header record body truncated: got {len(body)}, expected {record.data_size}"
        )
    return _build_header(record, body, file_path.name)


def _build_header(record: RecordHeader, body: bytes, filename: str) -> PluginHeader:
    masters, author, description, num_records = _parse_subrecords(body)
    flags = decode_flags(record.flags, filename)
    return PluginHeader(
        filename=filename,
        plugin_type=determine_plugin_type(flags, filename),
        flags=flags,
        masters=tuple(masters),
        author=author,
        description=description,
        form_version=record.form_version,
        num_records=num_records,
    )
