"""
Domain data functions for the portfolio.

Translates entity-shaped operations into versioned store calls and performs
the parent/child joins the store cannot do itself. Every compound write runs
inside one ``store.transaction()`` so that either all of its steps are
applied or none are.
"""

import asyncio
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger

from ..persistence.base import VersionedStore
from .models import (
    PROFILE_KEY, PortfolioItem, ProjectStatus, RecordType,
    achievement_key, experience_key, project_image_key, project_key,
    project_tech_key, skill_key, utc_now_iso,
)
from .shaping import (
    attach_achievements, attach_project_details, select_featured_skills, sort_order_key,
)


# Fields of a project request that are stored as child records.
PROJECT_CHILD_FIELDS = ("technologies", "images")

EXPORT_FORMAT_VERSION = "1.0"


def _new_id() -> str:
    return str(uuid.uuid4())


def _require_id(value: Dict[str, Any], entity: str) -> str:
    entity_id = value.get("id")
    if not entity_id:
        raise ValidationError(f"{entity} id is required", {"entity": entity})
    return str(entity_id)


def _stamp_created(value: Dict[str, Any]) -> Dict[str, Any]:
    now = utc_now_iso()
    return {**value, "created_at": now, "updated_at": now}


def _merge(current: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay ``patch`` on ``current`` keeping identity and creation time."""
    merged = {**current, **patch}
    merged["id"] = current.get("id")
    if "created_at" in current:
        merged["created_at"] = current["created_at"]
    merged["updated_at"] = utc_now_iso()
    return merged


def _unique(values: Iterable[str]) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class PortfolioDataService:
    """Entity operations over a ``VersionedStore``."""

    def __init__(self, store: VersionedStore):
        self.store = store
        self.logger = get_logger("portfolio.data")

    async def _require(self, store: VersionedStore, key: str, entity: str) -> Dict[str, Any]:
        current = await store.get_active(key)
        if current is None:
            raise NotFoundError(f"{entity} not found", {"key": key})
        return current

    async def _remove(self, key: str, entity: str) -> Dict[str, Any]:
        removed = await self.store.deactivate(key)
        if removed is None:
            raise NotFoundError(f"{entity} not found", {"key": key})
        self.logger.info("Record deactivated", key=key)
        return removed.value

    async def _update(self, key: str, record_type: RecordType, entity: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        async with self.store.transaction() as tx:
            current = await self._require(tx, key, entity)
            record = await tx.set_active(key, record_type, _merge(current, patch))
        return record.value

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def get_profile(self) -> Optional[Dict[str, Any]]:
        return await self.store.get_active(PROFILE_KEY)

    async def set_profile(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        record = await self.store.set_active(
            PROFILE_KEY, RecordType.PROFILE, {**profile, "updated_at": utc_now_iso()}
        )
        self.logger.info("Profile updated", version=record.version)
        return record.value

    # ------------------------------------------------------------------
    # Skills
    # ------------------------------------------------------------------

    async def get_all_skills(self) -> List[Dict[str, Any]]:
        return await self.store.list_active_by_type(RecordType.SKILL)

    async def get_skills_by_category(self, category: str) -> List[Dict[str, Any]]:
        return [skill for skill in await self.get_all_skills() if skill.get("category") == category]

    async def get_featured_skills(self) -> List[Dict[str, Any]]:
        return select_featured_skills(await self.get_all_skills())

    async def get_skill_categories(self) -> List[str]:
        """Distinct categories of the active skills, alphabetically."""
        return sorted({skill["category"] for skill in await self.get_all_skills() if skill.get("category")})

    async def get_skill(self, skill_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get_active(skill_key(skill_id))

    async def create_skill(self, skill: Dict[str, Any]) -> Dict[str, Any]:
        skill_id = _require_id(skill, "Skill")
        record = await self.store.set_active(skill_key(skill_id), RecordType.SKILL, _stamp_created(skill))
        self.logger.info("Skill created", skill_id=skill_id)
        return record.value

    async def update_skill(self, skill_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(skill_key(skill_id), RecordType.SKILL, "Skill", patch)

    async def delete_skill(self, skill_id: str) -> Dict[str, Any]:
        return await self._remove(skill_key(skill_id), "Skill")

    # ------------------------------------------------------------------
    # Experiences and achievements
    # ------------------------------------------------------------------

    async def get_all_experiences(self) -> List[Dict[str, Any]]:
        experiences, achievements = await asyncio.gather(
            self.store.list_active_by_type(RecordType.EXPERIENCE),
            self.store.list_active_by_type(RecordType.ACHIEVEMENT),
        )
        return attach_achievements(experiences, achievements)

    async def get_experience(self, experience_id: str) -> Optional[Dict[str, Any]]:
        experience = await self.store.get_active(experience_key(experience_id))
        if experience is None:
            return None
        achievements = await self.get_achievements_for_experience(experience_id)
        return {**experience, "achievements": achievements}

    async def _insert_achievements(self, tx: VersionedStore, experience_id: str,
                                   achievements: List[Dict[str, Any]]) -> None:
        for position, achievement in enumerate(achievements):
            achievement_id = str(achievement.get("id") or _new_id())
            value = _stamp_created({
                **achievement,
                "id": achievement_id,
                "experience_id": experience_id,
                "sort_order": achievement.get("sort_order") if achievement.get("sort_order") is not None else position,
            })
            await tx.set_active(achievement_key(achievement_id), RecordType.ACHIEVEMENT, value)

    async def create_experience(self, experience: Dict[str, Any]) -> Dict[str, Any]:
        """Create an experience together with its optional ``achievements`` list."""
        experience_id = _require_id(experience, "Experience")
        value = dict(experience)
        achievements = value.pop("achievements", None) or []

        async with self.store.transaction() as tx:
            await tx.set_active(experience_key(experience_id), RecordType.EXPERIENCE, _stamp_created(value))
            await self._insert_achievements(tx, experience_id, achievements)

        self.logger.info("Experience created", experience_id=experience_id, achievements=len(achievements))
        return await self.get_experience(experience_id)

    async def update_experience(self, experience_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        patch = {name: value for name, value in patch.items() if name != "achievements"}
        return await self._update(experience_key(experience_id), RecordType.EXPERIENCE, "Experience", patch)

    async def update_experience_with_achievements(
        self,
        experience_id: str,
        patch: Dict[str, Any],
        achievements: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Update an experience and replace its whole achievement list.

        The experience is version-bumped, every achievement attached to it is
        deactivated and each supplied achievement is written as a fresh
        record. Achievements without an id get a generated one; a missing
        ``sort_order`` defaults to the entry's list position.

        Raises:
            NotFoundError: the experience does not exist
        """
        key = experience_key(experience_id)
        patch = {name: value for name, value in patch.items() if name != "achievements"}

        async with self.store.transaction() as tx:
            current = await self._require(tx, key, "Experience")
            await tx.set_active(key, RecordType.EXPERIENCE, _merge(current, patch))
            removed = await tx.deactivate_children(RecordType.ACHIEVEMENT, "experience_id", experience_id)
            await self._insert_achievements(tx, experience_id, achievements)

        self.logger.info(
            "Experience achievements replaced",
            experience_id=experience_id,
            removed=len(removed),
            inserted=len(achievements),
        )
        return await self.get_experience(experience_id)

    async def delete_experience(self, experience_id: str) -> Dict[str, Any]:
        """Deactivate an experience and every achievement attached to it."""
        key = experience_key(experience_id)
        async with self.store.transaction() as tx:
            await self._require(tx, key, "Experience")
            await tx.deactivate_children(RecordType.ACHIEVEMENT, "experience_id", experience_id)
            removed = await tx.deactivate(key)

        self.logger.info("Experience deleted", experience_id=experience_id)
        return removed.value

    async def get_achievements_for_experience(self, experience_id: str) -> List[Dict[str, Any]]:
        achievements = await self.store.list_active_by_type(RecordType.ACHIEVEMENT)
        return sorted(
            (achievement for achievement in achievements if achievement.get("experience_id") == experience_id),
            key=sort_order_key,
        )

    async def get_achievement(self, achievement_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get_active(achievement_key(achievement_id))

    async def create_achievement(self, achievement: Dict[str, Any]) -> Dict[str, Any]:
        if not achievement.get("experience_id"):
            raise ValidationError("Achievement experience_id is required")
        achievement_id = str(achievement.get("id") or _new_id())
        record = await self.store.set_active(
            achievement_key(achievement_id),
            RecordType.ACHIEVEMENT,
            _stamp_created({**achievement, "id": achievement_id}),
        )
        return record.value

    async def update_achievement(self, achievement_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(achievement_key(achievement_id), RecordType.ACHIEVEMENT, "Achievement", patch)

    async def delete_achievement(self, achievement_id: str) -> Dict[str, Any]:
        return await self._remove(achievement_key(achievement_id), "Achievement")

    # ------------------------------------------------------------------
    # Projects, technologies and images
    # ------------------------------------------------------------------

    async def get_all_projects(self) -> List[Dict[str, Any]]:
        projects, technologies, images = await asyncio.gather(
            self.store.list_active_by_type(RecordType.PROJECT),
            self.store.list_active_by_type(RecordType.PROJECT_TECH),
            self.store.list_active_by_type(RecordType.PROJECT_IMAGE),
        )
        return attach_project_details(projects, technologies, images)

    async def get_projects_by_status(self, status: str) -> List[Dict[str, Any]]:
        return [project for project in await self.get_all_projects() if project.get("status") == status]

    async def get_featured_projects(self) -> List[Dict[str, Any]]:
        return [project for project in await self.get_all_projects() if project.get("is_featured") is True]

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        project = await self.store.get_active(project_key(project_id))
        if project is None:
            return None
        technologies, images = await asyncio.gather(
            self.store.list_active_by_type(RecordType.PROJECT_TECH),
            self.store.list_active_by_type(RecordType.PROJECT_IMAGE),
        )
        return attach_project_details([project], technologies, images)[0]

    async def get_project_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        for project in await self.store.list_active_by_type(RecordType.PROJECT):
            if project.get("slug") == slug:
                return await self.get_project(project["id"])
        return None

    async def _ensure_unique_slug(self, tx: VersionedStore, slug: Optional[str],
                                  exclude_id: Optional[str] = None) -> None:
        if not slug:
            return
        for project in await tx.list_active_by_type(RecordType.PROJECT):
            if project.get("slug") == slug and project.get("id") != exclude_id:
                raise ConflictError("Project with this slug already exists", {"slug": slug})

    async def _replace_technologies(self, tx: VersionedStore, project_id: str, technologies: List[str]) -> None:
        await tx.deactivate_children(RecordType.PROJECT_TECH, "project_id", project_id)
        for technology in _unique(technologies):
            await tx.set_active(
                project_tech_key(project_id, technology),
                RecordType.PROJECT_TECH,
                _stamp_created({"project_id": project_id, "technology": technology}),
            )

    async def _replace_images(self, tx: VersionedStore, project_id: str, images: List[Dict[str, Any]]) -> None:
        await tx.deactivate_children(RecordType.PROJECT_IMAGE, "project_id", project_id)
        for position, image in enumerate(images):
            image_id = str(image.get("id") or _new_id())
            value = _stamp_created({
                **image,
                "id": image_id,
                "project_id": project_id,
                "sort_order": image.get("sort_order") if image.get("sort_order") is not None else position,
            })
            await tx.set_active(project_image_key(image_id), RecordType.PROJECT_IMAGE, value)

    async def create_project(self, project: Dict[str, Any]) -> Dict[str, Any]:
        """Create a project with its ``technologies`` and ``images``.

        Raises:
            ConflictError: another active project already uses the slug
        """
        project_id = _require_id(project, "Project")
        value = {name: field for name, field in project.items() if name not in PROJECT_CHILD_FIELDS}
        value.setdefault("status", ProjectStatus.PUBLISHED.value)

        async with self.store.transaction() as tx:
            await self._ensure_unique_slug(tx, value.get("slug"))
            await tx.set_active(project_key(project_id), RecordType.PROJECT, _stamp_created(value))
            await self._replace_technologies(tx, project_id, project.get("technologies") or [])
            await self._replace_images(tx, project_id, project.get("images") or [])

        self.logger.info("Project created", project_id=project_id, slug=value.get("slug"))
        return await self.get_project(project_id)

    async def update_project(self, project_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``patch`` into a project.

        ``technologies`` and ``images``, when present in the patch, replace the
        stored sets. Absent, they are left untouched.
        """
        key = project_key(project_id)
        value_patch = {name: field for name, field in patch.items() if name not in PROJECT_CHILD_FIELDS}

        async with self.store.transaction() as tx:
            current = await self._require(tx, key, "Project")
            if value_patch.get("slug") and value_patch["slug"] != current.get("slug"):
                await self._ensure_unique_slug(tx, value_patch["slug"], exclude_id=project_id)
            await tx.set_active(key, RecordType.PROJECT, _merge(current, value_patch))
            if patch.get("technologies") is not None:
                await self._replace_technologies(tx, project_id, patch["technologies"])
            if patch.get("images") is not None:
                await self._replace_images(tx, project_id, patch["images"])

        self.logger.info("Project updated", project_id=project_id)
        return await self.get_project(project_id)

    async def delete_project(self, project_id: str) -> Dict[str, Any]:
        """Deactivate a project with its technologies and images."""
        key = project_key(project_id)
        async with self.store.transaction() as tx:
            await self._require(tx, key, "Project")
            await tx.deactivate_children(RecordType.PROJECT_TECH, "project_id", project_id)
            await tx.deactivate_children(RecordType.PROJECT_IMAGE, "project_id", project_id)
            removed = await tx.deactivate(key)

        self.logger.info("Project deleted", project_id=project_id)
        return removed.value

    async def get_images_for_project(self, project_id: str) -> List[Dict[str, Any]]:
        images = await self.store.list_active_by_type(RecordType.PROJECT_IMAGE)
        return sorted((image for image in images if image.get("project_id") == project_id), key=sort_order_key)

    async def create_project_image(self, project_id: str, image: Dict[str, Any]) -> Dict[str, Any]:
        image_id = str(image.get("id") or _new_id())
        async with self.store.transaction() as tx:
            await self._require(tx, project_key(project_id), "Project")
            record = await tx.set_active(
                project_image_key(image_id),
                RecordType.PROJECT_IMAGE,
                _stamp_created({**image, "id": image_id, "project_id": project_id}),
            )
        return record.value

    async def update_project_image(self, image_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(project_image_key(image_id), RecordType.PROJECT_IMAGE, "Project image", patch)

    async def delete_project_image(self, image_id: str) -> Dict[str, Any]:
        return await self._remove(project_image_key(image_id), "Project image")

    # ------------------------------------------------------------------
    # Bulk reordering
    # ------------------------------------------------------------------

    async def _update_order(self, record_type: RecordType, key_for: Callable[[str], str],
                            entries: List[Dict[str, Any]]) -> List[str]:
        updated = []
        async with self.store.transaction() as tx:
            for entry in entries:
                key = key_for(entry["id"])
                current = await tx.get_active(key)
                if current is None:
                    self.logger.warning("Skipping reorder of missing record", key=key)
                    continue
                await tx.set_active(key, record_type, {
                    **current,
                    "sort_order": entry["sort_order"],
                    "updated_at": utc_now_iso(),
                })
                updated.append(entry["id"])

        self.logger.info("Sort order updated", type=record_type.value, updated=len(updated))
        return updated

    async def update_skills_order(self, entries: List[Dict[str, Any]]) -> List[str]:
        return await self._update_order(RecordType.SKILL, skill_key, entries)

    async def update_experiences_order(self, entries: List[Dict[str, Any]]) -> List[str]:
        return await self._update_order(RecordType.EXPERIENCE, experience_key, entries)

    async def update_projects_order(self, entries: List[Dict[str, Any]]) -> List[str]:
        return await self._update_order(RecordType.PROJECT, project_key, entries)

    # ------------------------------------------------------------------
    # History and bulk reads
    # ------------------------------------------------------------------

    async def get_item_history(self, key: str) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in await self.store.list_history(key)]

    async def rollback_item(self, key: str, version: int) -> Dict[str, Any]:
        record = await self.store.activate_version(key, version)
        self.logger.info("Record rolled back", key=key, version=version)
        return record.to_dict()

    async def fetch_all_items(self) -> List[PortfolioItem]:
        """Every active record of every type, tagged with its type.

        Read in one pass so that a compound write is never cached half applied.
        """
        return [
            PortfolioItem(key=record.key, type=record.type, value=record.value)
            for record in await self.store.list_all_active()
        ]

    async def export_all_data(self) -> Dict[str, Any]:
        """Backup document of every active value grouped by record type."""
        data: Dict[str, List[Dict[str, Any]]] = {record_type.value: [] for record_type in RecordType}
        for item in await self.fetch_all_items():
            data[item.type.value].append(item.value)
        return {"exported_at": utc_now_iso(), "version": EXPORT_FORMAT_VERSION, "data": data}

    async def get_dashboard_stats(self) -> Dict[str, Any]:
        counts = await self.store.counts_by_type()
        skills, projects, experiences = await asyncio.gather(
            self.get_all_skills(),
            self.store.list_active_by_type(RecordType.PROJECT),
            self.get_all_experiences(),
        )

        last_updated = max((entry["last_updated"] for entry in counts.values()), default=None)
        return {
            "total_stats": {record_type: entry["count"] for record_type, entry in counts.items()},
            "featured_skills": sum(1 for skill in skills if skill.get("is_featured") is True),
            "published_projects": sum(
                1 for project in projects if project.get("status") == ProjectStatus.PUBLISHED.value
            ),
            "total_achievements": sum(len(experience["achievements"]) for experience in experiences),
            "last_updated": last_updated.isoformat() if last_updated else None,
        }
