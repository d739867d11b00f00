"""
Publish result domain objects for feedpush.

Provides standardized result types for the publish pipeline: one
FeedPublishResult per feed and a PublishSummary across all feeds.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional


class PublishStatus(Enum):
    """Outcome of publishing to one feed."""
    SUCCESS = "success"
    SKIPPED = "skipped"      # no API key could be resolved
    FAILED = "failed"
    DRY_RUN = "dry_run"


@dataclass
class FeedPublishResult:
    """
    What happened on a single feed.

    Counts are taken from the feed once its lifecycle ends.
    """
    feed_name: str
    url: str
    status: PublishStatus
    pushed: List[str] = field(default_factory=list)
    already_published: int = 0
    promotions: int = 0
    message: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            'feed': self.feed_name,
            'url': self.url,
            'status': self.status.value,
            'pushed': list(self.pushed),
            'already_published': self.already_published,
            'promotions': self.promotions,
        }
        if self.message:
            result['message'] = self.message
        if self.error:
            result['error'] = self.error
        return result


@dataclass
class PublishSummary:
    """Summary of a publish run across feeds."""
    total: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False
    details: List[FeedPublishResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True if no failures occurred. Skipped feeds are not failures."""
        return self.failed == 0

    @property
    def pushed_count(self) -> int:
        return sum(len(d.pushed) for d in self.details)

    def add_detail(self, detail: FeedPublishResult) -> None:
        """Add a feed result and update counts."""
        self.details.append(detail)
        self.total += 1

        if detail.status in (PublishStatus.SUCCESS, PublishStatus.DRY_RUN):
            self.successful += 1
        elif detail.status == PublishStatus.SKIPPED:
            self.skipped += 1
        elif detail.status == PublishStatus.FAILED:
            self.failed += 1
            if detail.error:
                self.errors.append(f"{detail.feed_name}: {detail.error}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': 'summary',
            'total': self.total,
            'successful': self.successful,
            'skipped': self.skipped,
            'failed': self.failed,
            'pushed': self.pushed_count,
            'dry_run': self.dry_run,
            'errors': self.errors,
        }
