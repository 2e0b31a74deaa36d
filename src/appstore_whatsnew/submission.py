"""
Submit-for-review workflow.

Submitting a version is six dependent API calls. The workflow records which
of them completed so that a failed run can be retried from the step that
failed instead of from the beginning.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from .exceptions import (
    ConflictError,
    MissingAppReferenceError,
    MissingScheduledDateError,
    SubmissionInProgressError,
)
from .models import ReleaseOption

logger = logging.getLogger(__name__)

# Review submissions that can still take another item
REUSABLE_SUBMISSION_STATES = ("READY_FOR_REVIEW", "UNRESOLVED_ISSUES")

# Review submissions that block a new one until Apple is done with them
ACTIVE_SUBMISSION_STATES = ("WAITING_FOR_REVIEW", "IN_REVIEW", "CANCELING", "COMPLETING")


class SubmissionStep(Enum):
    RESOLVE_APP = 1
    UPDATE_RELEASE_TYPE = 2
    CONFIGURE_PHASED_RELEASE = 3
    RESOLVE_REVIEW_SUBMISSION = 4
    ATTACH_VERSION = 5
    SUBMIT = 6


@dataclass
class SubmissionProgress:
    """What a workflow has done so far."""

    completed_steps: List[SubmissionStep] = field(default_factory=list)
    failed_step: Optional[SubmissionStep] = None
    error: Optional[BaseException] = None
    app_id: Optional[str] = None
    platform: Optional[str] = None
    review_submission_id: Optional[str] = None

    @property
    def next_step(self) -> Optional[SubmissionStep]:
        for step in SubmissionStep:
            if step not in self.completed_steps:
                return step
        return None

    @property
    def is_complete(self) -> bool:
        return self.next_step is None


class SubmissionWorkflow:
    """
    Submit one version for App Review.

    Steps run strictly in order. A failing step is recorded on `progress`
    and its exception re-raised; calling `run()` again skips the steps that
    already completed.

    Args:
        api: Client providing the submission primitives
        version_id: Version to submit
        release_option: How the version is released once approved
        phased_release_enabled: Opt-in to phased release (after-approval only)
    """

    def __init__(
        self,
        api: Any,
        version_id: str,
        release_option: ReleaseOption,
        phased_release_enabled: bool = False,
    ):
        self.api = api
        self.version_id = version_id
        self.release_option = release_option
        self.phased_release_enabled = phased_release_enabled
        self.progress = SubmissionProgress()
        self._handlers = {
            SubmissionStep.RESOLVE_APP: self._resolve_app,
            SubmissionStep.UPDATE_RELEASE_TYPE: self._update_release_type,
            SubmissionStep.CONFIGURE_PHASED_RELEASE: self._configure_phased_release,
            SubmissionStep.RESOLVE_REVIEW_SUBMISSION: self._resolve_review_submission,
            SubmissionStep.ATTACH_VERSION: self._attach_version,
            SubmissionStep.SUBMIT: self._submit,
        }

    @property
    def uses_phased_release(self) -> bool:
        return (
            self.phased_release_enabled
            and self.release_option.kind is ReleaseOption.Kind.AFTER_APPROVAL
        )

    def run(self) -> SubmissionProgress:
        """Run the remaining steps."""
        for step in SubmissionStep:
            if step in self.progress.completed_steps:
                continue

            logger.info(f"submit_for_review: {step.name} for version {self.version_id}")
            try:
                self._handlers[step]()
            except Exception as e:
                self.progress.failed_step = step
                self.progress.error = e
                logger.error(f"submit_for_review: {step.name} failed: {e}")
                raise

            self.progress.completed_steps.append(step)

        self.progress.failed_step = None
        self.progress.error = None
        logger.info(f"submit_for_review: Version {self.version_id} submitted")
        return self.progress

    def _resolve_app(self) -> None:
        detail = self.api.get_version_detail(self.version_id)
        relationships = detail.get("relationships") or {}
        app = (relationships.get("app") or {}).get("data") or {}
        if not app.get("id"):
            raise MissingAppReferenceError(
                f"Version {self.version_id} is not linked to an app"
            )
        self.progress.app_id = app["id"]
        self.progress.platform = (detail.get("attributes") or {}).get("platform")

    def _update_release_type(self) -> None:
        option = self.release_option
        if not option.is_complete:
            raise MissingScheduledDateError("Choose a date for the scheduled release")
        self.api.update_version_release_type(
            self.version_id, option.release_type, option.scheduled_date
        )

    def _configure_phased_release(self) -> None:
        enabled = self.uses_phased_release
        existing = self.api.get_phased_release(self.version_id)
        if existing:
            state = "ACTIVE" if enabled else "INACTIVE"
            self.api.update_phased_release(existing["id"], state)
        elif enabled:
            self.api.create_phased_release(self.version_id, "ACTIVE")

    def _resolve_review_submission(self) -> None:
        submissions = self.api.get_review_submissions(
            self.progress.app_id,
            states=list(REUSABLE_SUBMISSION_STATES + ACTIVE_SUBMISSION_STATES),
        )

        def state_of(submission):
            return (submission.get("attributes") or {}).get("state")

        for submission in submissions:
            if state_of(submission) in REUSABLE_SUBMISSION_STATES:
                logger.info(f"Reusing review submission {submission['id']}")
                self.progress.review_submission_id = submission["id"]
                return

        if any(state_of(s) in ACTIVE_SUBMISSION_STATES for s in submissions):
            raise SubmissionInProgressError(
                "This app has already been submitted for review. Wait for the "
                "current review to finish or cancel it in App Store Connect."
            )

        created = self.api.create_review_submission(
            self.progress.app_id, self.progress.platform
        )
        self.progress.review_submission_id = created["id"]

    def _attach_version(self) -> None:
        try:
            self.api.create_review_submission_item(
                self.progress.review_submission_id, self.version_id
            )
        except ConflictError:
            logger.warning(
                f"Version {self.version_id} is already part of review submission "
                f"{self.progress.review_submission_id}"
            )

    def _submit(self) -> None:
        self.api.submit_review_submission(self.progress.review_submission_id)
