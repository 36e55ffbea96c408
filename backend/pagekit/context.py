import random
import string
from dataclasses import dataclass, field

from pagekit.asset_matcher import AssetUrlMap
from pagekit.heuristics import DEFAULT_HEURISTICS, Heuristics

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 8


@dataclass
class ConversionContext:
    """
    State owned by a single conversion call. A fresh context is built for
    every conversion so concurrent conversions never share id registries or
    image caches.
    """
    asset_map: AssetUrlMap = field(default_factory=AssetUrlMap)
    heuristics: Heuristics = DEFAULT_HEURISTICS
    used_ids: set = field(default_factory=set)
    seen_images: set = field(default_factory=set)
    rng: random.Random = field(default_factory=random.Random)

    def new_id(self) -> str:
        while True:
            candidate = "".join(self.rng.choices(ID_ALPHABET, k=ID_LENGTH))
            if candidate not in self.used_ids:
                self.used_ids.add(candidate)
                return candidate
