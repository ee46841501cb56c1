"""Media asset feature."""
from .batch import run_batch
from .deletion import DeletionGuard
from .locator import (
    clean_file_path,
    extract_url_path,
    locator_variants,
    normalize_for_storage,
    normalize_locator,
)
from .models import Description, MediaAsset
from .reconcile import ReconcilePlan, reconcile_descriptions
from .repository import MediaRepository
from .resolver import IdentityResolver, LocatorPredicate, build_identity_pattern, build_predicates
from .service import MediaService

__all__ = [
    "DeletionGuard",
    "Description",
    "IdentityResolver",
    "LocatorPredicate",
    "MediaAsset",
    "MediaRepository",
    "MediaService",
    "ReconcilePlan",
    "build_identity_pattern",
    "build_predicates",
    "clean_file_path",
    "extract_url_path",
    "locator_variants",
    "normalize_for_storage",
    "normalize_locator",
    "reconcile_descriptions",
    "run_batch",
]
