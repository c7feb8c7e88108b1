from typing import Annotated, NewType

from beartype.vale import Is

# Compressed bytes consumed from the raw file. Never mix with DecompressedOffset.
CompressedOffset = NewType("CompressedOffset", int)
# Bytes produced by the decompressor, counted from the start of a block.
DecompressedOffset = NewType("DecompressedOffset", int)

IsNonNegative = Is[lambda n: n >= 0]

NonNegativeInt = Annotated[int, IsNonNegative]

# One decoded line: field name -> textual value, in insertion order.
Record = dict[str, str]
