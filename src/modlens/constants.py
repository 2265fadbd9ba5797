from types import MappingProxyType

from modlens.schemas.conflicts import Severity
from modlens.schemas.manifest import FileType

PLUGIN_EXTENSIONS = frozenset({".esp", ".esm", ".esl"})

FILE_TYPE_BY_EXTENSION: MappingProxyType[str, FileType] = MappingProxyType(
    {
        ".esp": FileType.plugin,
        ".esm": FileType.plugin,
        ".esl": FileType.plugin,
        ".nif": FileType.mesh,
        ".dds": FileType.texture,
        ".png": FileType.texture,
        ".tga": FileType.texture,
        ".bmp": FileType.texture,
        ".jpg": FileType.texture,
        ".jpeg": FileType.texture,
        ".wav": FileType.sound,
        ".xwm": FileType.sound,
        ".fuz": FileType.sound,
        ".lip": FileType.sound,
        ".pex": FileType.script,
        ".psc": FileType.script,
        ".swf": FileType.interface,
        ".seq": FileType.seq,
        ".bsa": FileType.bsa,
        ".ba2": FileType.bsa,
    }
)

SEVERITY_BY_FILE_TYPE: MappingProxyType[FileType, Severity] = MappingProxyType(
    {
        FileType.plugin: Severity.critical,
        FileType.bsa: Severity.high,
        FileType.script: Severity.high,
        FileType.mesh: Severity.medium,
        FileType.interface: Severity.medium,
        FileType.texture: Severity.low,
        FileType.sound: Severity.low,
        FileType.seq: Severity.low,
        FileType.other: Severity.low,
    }
)

# Lower rank sorts first.
SEVERITY_RANK: MappingProxyType[Severity, int] = MappingProxyType(
    {
        Severity.critical: 0,
        Severity.high: 1,
        Severity.medium: 2,
        Severity.low: 3,
        Severity.info: 4,
    }
)

BASE_SCORE_BY_FILE_TYPE: MappingProxyType[FileType, int] = MappingProxyType(
    {
        FileType.plugin: 90,
        FileType.bsa: 75,
        FileType.script: 70,
        FileType.interface: 55,
        FileType.mesh: 50,
        FileType.texture: 45,
        FileType.seq: 30,
        FileType.sound: 25,
        FileType.other: 20,
    }
)

MIN_SCORE = 0
MAX_SCORE = 100
IDENTICAL_FILE_DISCOUNT = 80
MULTI_SOURCE_BONUS = 5

# Top-level folders of a Bethesda ``Data`` directory.  An archive whose
# top level holds one of these (or a plugin) is already rooted correctly.
DATA_ROOTS = frozenset(
    {
        "meshes",
        "textures",
        "scripts",
        "interface",
        "sound",
        "music",
        "seq",
        "strings",
        "skse",
        "f4se",
        "shaders",
        "shadersfx",
        "lodsettings",
        "grass",
        "materials",
        "video",
        "calientetools",
        "dyndolod",
        "source",
        "nemesis_engine",
        "tools",
        "netscriptframework",
    }
)
