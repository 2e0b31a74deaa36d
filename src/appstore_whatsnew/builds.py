"""
Build selection for a version.
"""

from typing import List, Optional

from .models import AppStoreBuild


class BuildSelection:
    """
    Which build is attached to the selected version, locally and remotely.

    `initial_selected_build_id` mirrors the server; `selected_build_id` is
    what the user picked. The selection is dirty while they differ.
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.selected_build_id: Optional[str] = None
        self.initial_selected_build_id: Optional[str] = None
        self.assigned_build: Optional[AppStoreBuild] = None
        self.available_builds: List[AppStoreBuild] = []
        self.has_loaded_available_builds = False
        self.error_message: Optional[str] = None

    @property
    def is_dirty(self) -> bool:
        return self.selected_build_id != self.initial_selected_build_id

    @property
    def selected_build(self) -> Optional[AppStoreBuild]:
        for build in self.available_builds:
            if build.id == self.selected_build_id:
                return build
        if self.assigned_build and self.assigned_build.id == self.selected_build_id:
            return self.assigned_build
        return None

    def set_assigned(self, build: Optional[AppStoreBuild]) -> None:
        """Record the build the server has attached to the version."""
        self.assigned_build = build
        self.selected_build_id = build.id if build else None
        self.initial_selected_build_id = self.selected_build_id

    def select(self, build_id: Optional[str]) -> None:
        self.selected_build_id = build_id

    def accept_candidates(self, builds: List[AppStoreBuild]) -> None:
        """Cache the builds the user can pick from."""
        self.available_builds = list(builds)
        self.has_loaded_available_builds = True
        if self.selected_build_id and not any(
            b.id == self.selected_build_id for b in builds
        ):
            self.selected_build_id = None

    def mark_saved(self) -> None:
        self.initial_selected_build_id = self.selected_build_id
