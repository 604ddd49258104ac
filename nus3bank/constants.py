# Magic and container markers
FILE_MAGIC = b"NUS3"            # 4 bytes, followed by total size (u32)
BANKTOC_MARKER = b"BANKTOC "    # 8 bytes: container kind + TOC marker

# zlib stream headers seen on compressed banks (no/low, default, best compression)
ZLIB_MAGICS = (b"\x78\x01", b"\x78\x5e", b"\x78\x9c", b"\x78\xda")

# Fixed header sizes
OUTER_HEADER_SIZE = 8           # magic + total size
TOC_ENTRY_SIZE = 8              # tag[4] + size u32


# Section tags
TAG_PROP = b"PROP"
TAG_BINF = b"BINF"
TAG_GRP = b"GRP "
TAG_DTON = b"DTON"
TAG_TONE = b"TONE"
TAG_JUNK = b"JUNK"
TAG_PACK = b"PACK"

REQUIRED_TAGS = (TAG_BINF, TAG_TONE, TAG_PACK)


# TONE metadata block
TONE_META_MARKER = 8            # fixed u32 that precedes payload offset/size
TONE_META_RESERVED_SIZE = 6
TONE_META_PREFIX_SIZE = 8       # optional prefix found in some BANKTOC variants
TONE_META_PAIR_SIZE = 8         # (u32 index, f32 value) in either order
TONE_META_PARAM_COUNT = 12      # f32 params in the full block shape
TONE_META_COUNT_LIMIT = 1_000_000  # offsets and pair counts in the full block shape
TONE_META_TERMINATOR = -1       # ends the i32 word list after the pairs
TONE_POINTER_SIZE = 8           # (offset u32, size u32)

PAIR_INDEX_LIMIT = 1_000_000
PAIR_INDEX_END = 0xFFFFFFFF


# Sanity limits
MAX_SECTION_COUNT = 0x1000
MAX_TRACK_COUNT = 0x100000
MAX_NAME_BYTES = 254            # name length byte stores len + 1


DEFAULT_EXPORT_EXT = ".wav"
