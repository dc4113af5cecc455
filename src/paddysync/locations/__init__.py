"""Location resolution.

GPS coordinates resolve to the containing province, district and commune.
Each area carries a write-once three-letter code; the first lookup that
hits an area without one generates it and claims it in the store.
A location code is ``{province}-{district}-{commune}``; Phnom Penh gets
``PPH`` and Boeng Keng Kang gets ``BKK``.
"""

from paddysync.locations.codes import generate_base_code, generate_code
from paddysync.locations.resolver import LocationInfo, LocationResolver, validate_coordinates

__all__ = [
    "LocationInfo",
    "LocationResolver",
    "generate_base_code",
    "generate_code",
    "validate_coordinates",
]
