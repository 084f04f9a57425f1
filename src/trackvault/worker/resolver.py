"""Artist/album resolution memoized behind a TTL cache.

During a scan many files name the same artist and album. Each distinct
(owner, artist name) and (artist, album name) pair hits the repository's
get-or-create once; later files are served from the cache. The repository's
get-or-create stays the source of truth, so an evicted or stale entry only
costs another round trip.
"""

from typing import Optional

from trackvault.core.cache import CacheStrategy, cache as default_cache, simple_hash
from trackvault.core.models import Album, Artist, User
from trackvault.core.repository import Repository

ENTITY_TTL = 30 * 60


class EntityResolver:
    """Resolves names into Artist/Album entities through a shared cache.

    Attributes:
        repository: Store performing the actual get-or-create.
        cache: Cache service shared by all scanners of a run.
        ttl: Seconds a resolved entity stays cached.
    """

    def __init__(
        self,
        repository: Repository,
        cache: Optional[CacheStrategy] = None,
        ttl: int = ENTITY_TTL,
    ):
        self.repository = repository
        self.cache = cache or default_cache
        self.ttl = ttl

    def resolve_artist(self, owner: User, name: Optional[str]) -> Artist:
        name = (name or "").strip()
        return self.cache.remember(
            simple_hash(f"artist:{owner.id}_{name}"),
            self.ttl,
            lambda: self.repository.get_or_create_artist(owner, name),
        )

    def resolve_album(self, artist: Artist, name: Optional[str]) -> Album:
        name = (name or "").strip()
        return self.cache.remember(
            simple_hash(f"album:{artist.id}_{name}"),
            self.ttl,
            lambda: self.repository.get_or_create_album(artist, name),
        )
