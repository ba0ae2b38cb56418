"""
Unit tests for the portfolio domain data functions.
"""

import asyncio
import random
from unittest.mock import AsyncMock, patch

import pytest

from shared.errors import ConflictError, NotFoundError, StoreUnavailableError, ValidationError, VersionNotFoundError
from shared.test_helpers import PortfolioDataFactory
from service_portfolio.app.persistence import InMemoryVersionedStore
from service_portfolio.app.portfolio.data import PortfolioDataService
from service_portfolio.app.portfolio.models import RecordType


class TestPortfolioDataService:
    """Test cases for PortfolioDataService."""

    @pytest.fixture
    def store(self):
        """Create an in-process store."""
        return InMemoryVersionedStore()

    @pytest.fixture
    def service(self, store):
        """Create the data service."""
        return PortfolioDataService(store)

    # Profile and skills

    @pytest.mark.asyncio
    async def test_set_profile(self, service, store):
        await service.set_profile(PortfolioDataFactory.create_profile(name="First"))
        profile = await service.set_profile(PortfolioDataFactory.create_profile(name="Second"))

        assert profile["name"] == "Second"
        assert "updated_at" in profile
        assert (await service.get_profile())["name"] == "Second"
        assert len(await store.list_history("profile")) == 2

    @pytest.mark.asyncio
    async def test_create_skill_requires_id(self, service):
        with pytest.raises(ValidationError):
            await service.create_skill({"name": "Go", "category": "language"})

    @pytest.mark.asyncio
    async def test_update_skill_preserves_identity(self, service):
        created = await service.create_skill(PortfolioDataFactory.create_skill("Go", skill_id="s1"))

        updated = await service.update_skill("s1", {"id": "other", "proficiency": 5, "created_at": "later"})

        assert updated["id"] == "s1"
        assert updated["proficiency"] == 5
        assert updated["name"] == "Go"
        assert updated["created_at"] == created["created_at"]

    @pytest.mark.asyncio
    async def test_update_missing_skill(self, service):
        with pytest.raises(NotFoundError):
            await service.update_skill("missing", {"name": "Go"})

    @pytest.mark.asyncio
    async def test_delete_missing_skill(self, service):
        with pytest.raises(NotFoundError):
            await service.delete_skill("missing")

    @pytest.mark.asyncio
    async def test_skill_filters(self, service):
        await service.create_skill(PortfolioDataFactory.create_skill("Go", category="language", is_featured=True))
        await service.create_skill(PortfolioDataFactory.create_skill("Redis", category="database", is_featured=False))

        assert [s["name"] for s in await service.get_skills_by_category("database")] == ["Redis"]
        assert [s["name"] for s in await service.get_featured_skills()] == ["Go"]
        assert len(await service.get_all_skills()) == 2

    @pytest.mark.asyncio
    async def test_skill_categories(self, service):
        for name, category in (("Go", "language"), ("Redis", "database"), ("Rust", "language")):
            await service.create_skill(PortfolioDataFactory.create_skill(name, category=category))

        assert await service.get_skill_categories() == ["database", "language"]

    # Experiences and achievements

    @pytest.mark.asyncio
    async def test_create_experience_with_achievements(self, service):
        experience = await service.create_experience(
            PortfolioDataFactory.create_experience("e1", achievements=["Shipped", "Scaled"])
        )

        assert [a["description"] for a in experience["achievements"]] == ["Shipped", "Scaled"]
        assert [a["sort_order"] for a in experience["achievements"]] == [0, 1]
        assert all(a["experience_id"] == "e1" and a["id"] for a in experience["achievements"])

    @pytest.mark.asyncio
    async def test_replace_achievements_with_empty_list(self, service):
        """An empty list leaves the experience with no achievements."""
        await service.create_experience(
            PortfolioDataFactory.create_experience("e1", achievements=["One", "Two", "Three"])
        )

        experience = await service.update_experience_with_achievements("e1", {"position": "Lead"}, [])

        assert experience["achievements"] == []
        assert experience["position"] == "Lead"
        all_experiences = await service.get_all_experiences()
        assert all_experiences[0]["achievements"] == []

    @pytest.mark.asyncio
    async def test_replace_achievements_keeps_supplied_ids(self, service, store):
        await service.create_experience(PortfolioDataFactory.create_experience("e1"))
        await service.update_experience_with_achievements("e1", {}, [{"id": "a1", "description": "v1"}])

        experience = await service.update_experience_with_achievements(
            "e1", {}, [{"id": "a1", "description": "v2", "sort_order": 4}, {"description": "new"}]
        )

        assert [a["description"] for a in experience["achievements"]] == ["new", "v2"]
        history = await store.list_history("achievement:a1")
        assert [record.version for record in history] == [2, 1]

    @pytest.mark.asyncio
    async def test_replace_achievements_is_atomic(self, service):
        """A failure mid-way leaves experience and achievements untouched."""
        await service.create_experience(
            PortfolioDataFactory.create_experience("e1", position="Engineer", achievements=["Kept"])
        )

        with patch.object(
            InMemoryVersionedStore, "deactivate_children",
            AsyncMock(side_effect=StoreUnavailableError("Store operation failed: deactivate_children")),
        ):
            with pytest.raises(StoreUnavailableError):
                await service.update_experience_with_achievements("e1", {"position": "Lead"}, [])

        experience = await service.get_experience("e1")
        assert experience["position"] == "Engineer"
        assert [a["description"] for a in experience["achievements"]] == ["Kept"]

    @pytest.mark.asyncio
    async def test_replace_achievements_missing_experience(self, service):
        with pytest.raises(NotFoundError):
            await service.update_experience_with_achievements("missing", {}, [])

    @pytest.mark.asyncio
    async def test_delete_experience_cascades(self, service):
        await service.create_experience(PortfolioDataFactory.create_experience("e1", achievements=["One"]))

        await service.delete_experience("e1")

        assert await service.get_experience("e1") is None
        assert await service.store.list_active_by_type(RecordType.ACHIEVEMENT) == []

    @pytest.mark.asyncio
    async def test_achievement_crud(self, service):
        await service.create_experience(PortfolioDataFactory.create_experience("e1"))

        created = await service.create_achievement({"experience_id": "e1", "description": "Did it", "sort_order": 0})
        updated = await service.update_achievement(created["id"], {"metrics": "2x"})

        assert updated["metrics"] == "2x"
        assert (await service.get_achievements_for_experience("e1"))[0]["id"] == created["id"]

        await service.delete_achievement(created["id"])
        assert await service.get_achievement(created["id"]) is None

    @pytest.mark.asyncio
    async def test_create_achievement_requires_experience(self, service):
        with pytest.raises(ValidationError):
            await service.create_achievement({"description": "Orphan"})

    # Projects

    @pytest.mark.asyncio
    async def test_demo_project_technologies_replace_all(self, service):
        """Updating technologies replaces the whole set."""
        await service.create_project(
            PortfolioDataFactory.create_project("demo", project_id="p1", technologies=["go", "postgres"])
        )

        fetched = await service.get_project_by_slug("demo")
        assert sorted(fetched["technologies"]) == ["go", "postgres"]

        await service.update_project("p1", {"technologies": ["go"]})

        fetched = await service.get_project_by_slug("demo")
        assert fetched["technologies"] == ["go"]

    @pytest.mark.asyncio
    async def test_update_project_without_technologies_keeps_them(self, service):
        await service.create_project(PortfolioDataFactory.create_project("demo", project_id="p1", technologies=["go"]))

        project = await service.update_project("p1", {"title": "Renamed"})

        assert project["title"] == "Renamed"
        assert project["technologies"] == ["go"]

    @pytest.mark.asyncio
    async def test_duplicate_technologies_collapsed(self, service):
        project = await service.create_project(
            PortfolioDataFactory.create_project("demo", technologies=["go", "go", "rust"])
        )

        assert project["technologies"] == ["go", "rust"]

    @pytest.mark.asyncio
    async def test_slug_conflict_on_create(self, service):
        await service.create_project(PortfolioDataFactory.create_project("demo"))

        with pytest.raises(ConflictError):
            await service.create_project(PortfolioDataFactory.create_project("demo"))

        assert len(await service.get_all_projects()) == 1

    @pytest.mark.asyncio
    async def test_slug_conflict_on_update(self, service):
        await service.create_project(PortfolioDataFactory.create_project("one", project_id="p1"))
        await service.create_project(PortfolioDataFactory.create_project("two", project_id="p2"))

        with pytest.raises(ConflictError):
            await service.update_project("p2", {"slug": "one"})

        assert (await service.get_project("p2"))["slug"] == "two"

    @pytest.mark.asyncio
    async def test_project_images(self, service):
        await service.create_project(PortfolioDataFactory.create_project(
            "demo", project_id="p1",
            images=[{"image_url": "/b.png"}, {"image_url": "/a.png", "sort_order": 0}],
        ))

        image = await service.create_project_image("p1", {"image_url": "/c.png", "sort_order": 9})
        await service.update_project_image(image["id"], {"caption": "Last"})

        images = await service.get_images_for_project("p1")
        assert [i["image_url"] for i in images][-1] == "/c.png"
        assert images[-1]["caption"] == "Last"

        await service.delete_project_image(image["id"])
        assert len(await service.get_images_for_project("p1")) == 2

    @pytest.mark.asyncio
    async def test_image_for_missing_project(self, service):
        with pytest.raises(NotFoundError):
            await service.create_project_image("missing", {"image_url": "/x.png"})

    @pytest.mark.asyncio
    async def test_delete_project_cascades(self, service, store):
        await service.create_project(PortfolioDataFactory.create_project(
            "demo", project_id="p1", technologies=["go"], images=[{"image_url": "/a.png"}],
        ))

        await service.delete_project("p1")

        assert await service.get_project("p1") is None
        assert await store.list_active_by_type(RecordType.PROJECT_TECH) == []
        assert await store.list_active_by_type(RecordType.PROJECT_IMAGE) == []

    @pytest.mark.asyncio
    async def test_project_status_filters(self, service):
        await service.create_project(PortfolioDataFactory.create_project("live", status="published", is_featured=True))
        await service.create_project(PortfolioDataFactory.create_project("wip", status="draft"))

        assert [p["slug"] for p in await service.get_projects_by_status("draft")] == ["wip"]
        assert [p["slug"] for p in await service.get_featured_projects()] == ["live"]

    # Reordering

    @pytest.mark.asyncio
    async def test_reorder_skips_missing_ids(self, service):
        await service.create_skill(PortfolioDataFactory.create_skill("Go", skill_id="s1", sort_order=0))

        updated = await service.update_skills_order([
            {"id": "s1", "sort_order": 3},
            {"id": "gone", "sort_order": 1},
        ])

        assert updated == ["s1"]
        assert (await service.get_skill("s1"))["sort_order"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42, 1234, 9001])
    async def test_concurrent_reorders_with_disjoint_ids(self, service, seed):
        """Two concurrent reorders over disjoint ids both apply."""
        rng = random.Random(seed)
        ids = [f"s{index}" for index in range(rng.randint(4, 20))]
        for skill_id in ids:
            await service.create_skill(PortfolioDataFactory.create_skill(skill_id, skill_id=skill_id, sort_order=0))

        rng.shuffle(ids)
        split = rng.randint(1, len(ids) - 1)
        first, second = ids[:split], ids[split:]
        expected = {skill_id: rng.randint(1, 1000) for skill_id in ids}

        await asyncio.gather(
            service.update_skills_order([{"id": i, "sort_order": expected[i]} for i in first]),
            service.update_skills_order([{"id": i, "sort_order": expected[i]} for i in second]),
        )

        for skill_id in ids:
            assert (await service.get_skill(skill_id))["sort_order"] == expected[skill_id]

    @pytest.mark.asyncio
    async def test_reorder_experiences_and_projects(self, service):
        await service.create_experience(PortfolioDataFactory.create_experience("e1"))
        await service.create_project(PortfolioDataFactory.create_project("demo", project_id="p1"))

        assert await service.update_experiences_order([{"id": "e1", "sort_order": 5}]) == ["e1"]
        assert await service.update_projects_order([{"id": "p1", "sort_order": 6}]) == ["p1"]
        assert (await service.get_experience("e1"))["sort_order"] == 5
        assert (await service.get_project("p1"))["sort_order"] == 6

    # History, bulk reads and stats

    @pytest.mark.asyncio
    async def test_history_and_rollback(self, service):
        await service.create_skill(PortfolioDataFactory.create_skill("Go", skill_id="s1"))
        await service.update_skill("s1", {"name": "Golang"})

        history = await service.get_item_history("skill:s1")
        assert [entry["version"] for entry in history] == [2, 1]

        record = await service.rollback_item("skill:s1", 1)
        assert record["value"]["name"] == "Go"
        assert (await service.get_skill("s1"))["name"] == "Go"

    @pytest.mark.asyncio
    async def test_rollback_missing_version(self, service):
        await service.create_skill(PortfolioDataFactory.create_skill("Go", skill_id="s1"))

        with pytest.raises(VersionNotFoundError):
            await service.rollback_item("skill:s1", 5)

    @pytest.mark.asyncio
    async def test_fetch_all_items_tags_types(self, service):
        await service.set_profile(PortfolioDataFactory.create_profile())
        await service.create_project(PortfolioDataFactory.create_project("demo", technologies=["go"]))

        items = await service.fetch_all_items()

        assert {item.type for item in items} == {RecordType.PROFILE, RecordType.PROJECT, RecordType.PROJECT_TECH}
        assert all(RecordType.from_key(item.key) is item.type for item in items)

    @pytest.mark.asyncio
    async def test_fetch_all_items_during_compound_write(self, service):
        """A bulk read racing a project update sees it entirely or not at all."""
        await service.create_project(PortfolioDataFactory.create_project("demo", project_id="p1", technologies=["go"]))
        deactivate_children = InMemoryVersionedStore.deactivate_children

        async def slow_deactivate_children(store, *args):
            await asyncio.sleep(0.02)
            return await deactivate_children(store, *args)

        with patch.object(InMemoryVersionedStore, "deactivate_children", slow_deactivate_children):
            update = asyncio.create_task(service.update_project("p1", {"title": "New", "technologies": ["rust"]}))
            await asyncio.sleep(0.005)
            items = await service.fetch_all_items()
            await update

        project = next(item.value for item in items if item.type is RecordType.PROJECT)
        technologies = [item.value["technology"] for item in items if item.type is RecordType.PROJECT_TECH]
        assert (project["title"], technologies) == ("New", ["rust"])

    @pytest.mark.asyncio
    async def test_export_all_data(self, service):
        await service.set_profile(PortfolioDataFactory.create_profile())
        await service.create_project(PortfolioDataFactory.create_project("demo", technologies=["go"]))

        export = await service.export_all_data()

        assert export["version"] == "1.0"
        assert export["exported_at"]
        assert set(export["data"]) == {record_type.value for record_type in RecordType}
        assert export["data"]["profile"][0]["name"] == "Ada Example"
        assert [tech["technology"] for tech in export["data"]["project_tech"]] == ["go"]
        assert export["data"]["skill"] == []

    @pytest.mark.asyncio
    async def test_dashboard_stats(self, service):
        await service.create_skill(PortfolioDataFactory.create_skill("Go", is_featured=True))
        await service.create_skill(PortfolioDataFactory.create_skill("Perl", is_featured=False))
        await service.create_experience(PortfolioDataFactory.create_experience("e1", achievements=["One", "Two"]))
        await service.create_project(PortfolioDataFactory.create_project("live", status="published"))
        await service.create_project(PortfolioDataFactory.create_project("wip", status="draft"))

        stats = await service.get_dashboard_stats()

        assert stats["total_stats"]["skill"] == 2
        assert stats["total_stats"]["achievement"] == 2
        assert stats["featured_skills"] == 1
        assert stats["published_projects"] == 1
        assert stats["total_achievements"] == 2
        assert stats["last_updated"] is not None

    @pytest.mark.asyncio
    async def test_dashboard_stats_empty(self, service):
        stats = await service.get_dashboard_stats()

        assert stats["total_stats"] == {}
        assert stats["last_updated"] is None
