"""Registry of monitored communities: seeds, scrape cadence, baselines and leases.

Communities are identified by (platform, name) and are only ever
deactivated, never deleted. A short-lived lease per community keeps two
overlapping discovery runs from scraping the same community; the minimum
interval between scrapes alone is not a lock.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from data_models.community import (
    CommunityBaseline,
    CommunityCategory,
    DiscoveredCommunity,
    SeedCommunity,
)
from data_models.signals import Platform, RawSignal
from db.models import DiscoveredCommunityModel, utc_now
from ingestion.community_discovery import (
    categorize_subreddit,
    estimate_merch_potential,
    extract_community_mentions,
    suggest_communities_for_category,
)
from ingestion.payloads import first_content

logger = logging.getLogger(__name__)

# DiscoveredCommunity fields copied onto the row by upsert_community when set
DESCRIPTIVE_FIELDS = (
    "display_name",
    "description",
    "url",
    "size",
    "category",
    "sub_category",
    "merch_potential",
    "merch_notes",
)


def community_from_row(row: DiscoveredCommunityModel) -> DiscoveredCommunity:
    """Convert a community row to its schema, baseline included when stored."""
    baseline = None
    if row.avg_upvotes:
        baseline = CommunityBaseline(
            avg_upvotes=row.avg_upvotes,
            avg_comments=row.avg_comments or 0.0,
            avg_shares=row.avg_shares or 0.0,
            avg_views=row.avg_views,
            sample_size=row.baseline_sample_size or 0,
            updated_at=row.baseline_updated_at or row.created_at,
        )

    return DiscoveredCommunity(
        id=row.id,
        platform=row.platform,
        name=row.name,
        display_name=row.display_name,
        description=row.description,
        url=row.url,
        size=row.size,
        category=row.category,
        sub_category=row.sub_category,
        merch_potential=row.merch_potential,
        merch_notes=row.merch_notes,
        is_active=bool(row.is_active),
        is_priority=bool(row.is_priority),
        last_scraped_at=row.last_scraped_at,
        scrape_count=row.scrape_count or 0,
        last_signal_count=row.last_signal_count,
        baseline=baseline,
        discovered_by=row.discovered_by,
        discovered_from=row.discovered_from,
    )


def _apply_baseline(row: DiscoveredCommunityModel, baseline: CommunityBaseline) -> None:
    row.avg_upvotes = baseline.avg_upvotes
    row.avg_comments = baseline.avg_comments
    row.avg_shares = baseline.avg_shares
    row.avg_views = baseline.avg_views
    row.baseline_sample_size = baseline.sample_size
    row.baseline_updated_at = baseline.updated_at


class CommunityRegistry:
    """Community bookkeeping backed by a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        seeds: list[SeedCommunity] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize registry.

        Args:
            session_factory: Factory opening one session per operation
            seeds: Curated starter communities
            clock: Current time as a naive UTC datetime
        """
        self.session_factory = session_factory
        self.seeds = list(seeds or [])
        self.clock = clock

    def _get_row(self, db: Session, platform: str, name: str) -> DiscoveredCommunityModel | None:
        return db.execute(
            select(DiscoveredCommunityModel).where(
                DiscoveredCommunityModel.platform == platform,
                DiscoveredCommunityModel.name == name,
            )
        ).scalar_one_or_none()

    def ensure_seeds(self, platforms: list[Platform | str] | None = None) -> int:
        """Insert seed communities for the given platforms if missing.

        Existing rows keep their scrape bookkeeping and baselines; only
        descriptive seed fields are refreshed.

        Returns:
            Number of seeds inserted
        """
        wanted = {Platform(p).value for p in platforms} if platforms else None
        seeds = [s for s in self.seeds if wanted is None or s.platform in wanted]

        db = self.session_factory()
        inserted = 0
        try:
            for seed in seeds:
                row = self._get_row(db, seed.platform, seed.name)
                if row is None:
                    db.add(
                        DiscoveredCommunityModel(
                            platform=seed.platform,
                            name=seed.name,
                            category=seed.category,
                            merch_potential=seed.merch_potential,
                            is_priority=seed.is_priority,
                            is_active=True,
                            scrape_count=0,
                            discovered_by="seed",
                            created_at=self.clock(),
                        )
                    )
                    inserted += 1
                else:
                    row.category = seed.category
                    row.merch_potential = seed.merch_potential
                    row.is_priority = seed.is_priority or bool(row.is_priority)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Error seeding communities: {e}")
            raise
        finally:
            db.close()

        if inserted:
            logger.info(f"Seeded {inserted} communities")
        return inserted

    def upsert_community(self, community: DiscoveredCommunity) -> str:
        """Insert a community or update the descriptive fields that are set.

        Scrape bookkeeping and is_active are never touched here. A baseline
        is written only when the row has none yet.

        Returns:
            Community id
        """
        db = self.session_factory()
        try:
            row = self._get_row(db, community.platform, community.name)
            if row is None:
                row = DiscoveredCommunityModel(
                    platform=community.platform,
                    name=community.name,
                    is_active=True,
                    scrape_count=0,
                    discovered_by=community.discovered_by,
                    discovered_from=community.discovered_from,
                    created_at=self.clock(),
                )
                db.add(row)

            for field in DESCRIPTIVE_FIELDS:
                value = getattr(community, field)
                if value is not None and value != "":
                    setattr(row, field, value)
            if community.baseline and not row.avg_upvotes:
                _apply_baseline(row, community.baseline)

            db.flush()
            community_id = row.id
            db.commit()
            return community_id
        except Exception as e:
            db.rollback()
            logger.error(f"Error upserting community {community.platform}/{community.name}: {e}")
            raise
        finally:
            db.close()

    def get_community(self, platform: str, name: str) -> DiscoveredCommunity | None:
        db = self.session_factory()
        try:
            row = self._get_row(db, platform, name)
            return community_from_row(row) if row else None
        finally:
            db.close()

    def get_due_communities(
        self,
        platforms: list[Platform | str] | None = None,
        limit: int = 20,
        min_hours_between_scrapes: float = 12,
    ) -> list[DiscoveredCommunity]:
        """Active communities not scraped within the minimum interval.

        Ordered by priority, then merch potential, then staleness (never
        scraped first).
        """
        cutoff = self.clock() - timedelta(hours=min_hours_between_scrapes)
        query = select(DiscoveredCommunityModel).where(
            DiscoveredCommunityModel.is_active.is_(True),
            or_(
                DiscoveredCommunityModel.last_scraped_at.is_(None),
                DiscoveredCommunityModel.last_scraped_at < cutoff,
            ),
        )
        if platforms:
            query = query.where(
                DiscoveredCommunityModel.platform.in_([Platform(p).value for p in platforms])
            )

        query = query.order_by(
            DiscoveredCommunityModel.is_priority.desc(),
            DiscoveredCommunityModel.merch_potential.desc(),
            case((DiscoveredCommunityModel.last_scraped_at.is_(None), 0), else_=1),
            DiscoveredCommunityModel.last_scraped_at.asc(),
        ).limit(limit)

        db = self.session_factory()
        try:
            return [community_from_row(row) for row in db.execute(query).scalars().all()]
        finally:
            db.close()

    def get_baseline(self, platform: str, name: str) -> CommunityBaseline | None:
        """Stored baseline, or None when no upvote baseline exists yet."""
        community = self.get_community(platform, name)
        return community.baseline if community else None

    def record_scrape(
        self,
        platform: str,
        name: str,
        signal_count: int,
        baseline: CommunityBaseline | None = None,
        community_size: int | None = None,
    ) -> None:
        """Update scrape bookkeeping (and baseline, when given) after a scrape."""
        db = self.session_factory()
        try:
            row = self._get_row(db, platform, name)
            if row is None:
                logger.warning(f"record_scrape: unknown community {platform}/{name}")
                return
            row.last_scraped_at = self.clock()
            row.scrape_count = (row.scrape_count or 0) + 1
            row.last_signal_count = signal_count
            if community_size:
                row.size = community_size
            if baseline:
                _apply_baseline(row, baseline)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def deactivate_community(self, platform: str, name: str) -> bool:
        """Stop monitoring a community. Returns False if it does not exist."""
        db = self.session_factory()
        try:
            row = self._get_row(db, platform, name)
            if row is None:
                return False
            row.is_active = False
            row.deactivated_at = self.clock()
            db.commit()
            logger.info(f"Deactivated community {platform}/{name}")
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Leases

    def acquire_lease(self, platform: str, name: str, owner: str, ttl: timedelta) -> bool:
        """Claim a community for one run.

        Succeeds when no lease exists, the lease has expired, or the caller
        already holds it. The check and the claim are one UPDATE statement.
        """
        now = self.clock()
        db = self.session_factory()
        try:
            result = db.execute(
                update(DiscoveredCommunityModel)
                .where(
                    DiscoveredCommunityModel.platform == platform,
                    DiscoveredCommunityModel.name == name,
                    or_(
                        DiscoveredCommunityModel.lease_owner.is_(None),
                        DiscoveredCommunityModel.lease_owner == owner,
                        DiscoveredCommunityModel.lease_expires_at.is_(None),
                        DiscoveredCommunityModel.lease_expires_at <= now,
                    ),
                )
                .values(lease_owner=owner, lease_expires_at=now + ttl)
            )
            db.commit()
            return (result.rowcount or 0) == 1
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def release_lease(self, platform: str, name: str, owner: str) -> None:
        """Drop a lease held by owner (no-op if someone else holds it)."""
        db = self.session_factory()
        try:
            db.execute(
                update(DiscoveredCommunityModel)
                .where(
                    and_(
                        DiscoveredCommunityModel.platform == platform,
                        DiscoveredCommunityModel.name == name,
                        DiscoveredCommunityModel.lease_owner == owner,
                    )
                )
                .values(lease_owner=None, lease_expires_at=None)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Expansion

    def _propose(self, names: list[str], source: str, discovered_by: str, platform: str) -> list[str]:
        added = []
        for name in names:
            if self.get_community(platform, name):
                continue
            category = categorize_subreddit(name)
            try:
                self.upsert_community(
                    DiscoveredCommunity(
                        platform=platform,
                        name=name,
                        category=category,
                        merch_potential=estimate_merch_potential(name, category),
                        discovered_by=discovered_by,
                        discovered_from=source,
                    )
                )
            except IntegrityError:
                continue
            added.append(name)
        if added:
            logger.info(f"Added {len(added)} communities via {discovered_by} from {source}: {added}")
        return added

    def expand_from_signals(
        self,
        source: str,
        signals: list[RawSignal],
        limit: int = 5,
    ) -> list[str]:
        """Add subreddits mentioned in scraped Reddit signals.

        Returns:
            Names of newly added communities
        """
        texts = []
        for signal in signals:
            if signal.platform == Platform.REDDIT.value:
                texts.extend([signal.title or "", signal.content or ""])
        mentions = extract_community_mentions(texts, exclude={source})
        return self._propose(mentions[:limit], source, "expansion", Platform.REDDIT.value)

    def discover_related(self, source: str, scrape_client, limit: int = 5) -> list[str]:
        """Add subreddits linked from a subreddit's about page.

        Raises:
            ScrapeError: If the about page cannot be scraped
        """
        results = scrape_client.scrape_universal(
            f"https://www.reddit.com/r/{source}/about.json",
            markdown=True,
        )
        content = first_content(results, f"r/{source} about page")
        text = content if isinstance(content, str) else str(content)
        mentions = extract_community_mentions([text], exclude={source})
        return self._propose(mentions[:limit], source, "expansion", Platform.REDDIT.value)

    def suggest_for_category(self, category: CommunityCategory | str, limit: int = 5) -> list[str]:
        """Add known sibling subreddits for a category."""
        names = [n.lower() for n in suggest_communities_for_category(category)]
        source = CommunityCategory(category).value
        return self._propose(names[:limit], source, "category-suggestion", Platform.REDDIT.value)
