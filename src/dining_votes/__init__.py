"""Vote aggregation core for dining-hall food items."""

from .bank import FoodEntry, LocationEntry, Registry, load, merge_menu, normalize, save
from .counter_store import CounterStore
from .errors import CorruptSnapshot, DiningVotesError, FetchError, MalformedPayload, StoreError
from .remote import RegistryHolder, RegistryReloader, RemoteRegistry, fetch_registry
from .sanitize import sanitize
from .votes import VoteDelta, VoteDiffRequest, decode_votes, diff_and_map

__all__ = [
    "CorruptSnapshot",
    "CounterStore",
    "DiningVotesError",
    "FetchError",
    "FoodEntry",
    "LocationEntry",
    "MalformedPayload",
    "Registry",
    "RegistryHolder",
    "RegistryReloader",
    "RemoteRegistry",
    "StoreError",
    "VoteDelta",
    "VoteDiffRequest",
    "decode_votes",
    "diff_and_map",
    "fetch_registry",
    "load",
    "merge_menu",
    "normalize",
    "sanitize",
    "save",
]
