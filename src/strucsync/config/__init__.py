from .manifest import FileRule, ManifestDefaults, ResolvedSyncPlan, SyncManifest

__all__ = ["FileRule", "ManifestDefaults", "ResolvedSyncPlan", "SyncManifest"]
