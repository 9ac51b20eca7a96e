"""
Artifact storage exports.
"""

from stepwright.storage.artifacts import LocalArtifactStore, artifact_name

__all__ = ["LocalArtifactStore", "artifact_name"]
