"""Tests for the sync_uploads CLI command."""

import pytest

from fieldsync.cli.sync_uploads import async_main, format_record
from fieldsync.core.config import Settings
from fieldsync.core.database import init_schema, setup_db_session
from fieldsync.models.upload_record import MediaStage, UploadRecord, UploadStatus
from fieldsync.stores.upload_store import UploadRecordStore


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        APP_ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
        MEDIA_DIR=str(tmp_path / "media"),
        API_BASE_URL="http://backend.test",
        UPLOADER_ID="7",
    )


async def seed(settings: Settings, *records: UploadRecord) -> None:
    factory = setup_db_session(settings.database_url)
    engine = factory.kw["bind"]
    try:
        await init_schema(engine)
        store = UploadRecordStore(factory)
        await store.load()
        for record in records:
            await store.add(record)
    finally:
        await engine.dispose()


async def load(settings: Settings) -> UploadRecordStore:
    factory = setup_db_session(settings.database_url)
    store = UploadRecordStore(factory)
    await store.load()
    await factory.kw["bind"].dispose()
    return store


@pytest.mark.asyncio
async def test_list_offline(settings, capsys):
    record = UploadRecord(ticket_id=42, local_artifact_ref="42/a.jpg", uploaded_by="7")
    await seed(settings, record)

    exit_code = await async_main(["--list", "--offline"], settings=settings)

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "Upload Queue (1 records)" in out
    assert str(record.id) in out
    assert "Upload Sync Summary" not in out


@pytest.mark.asyncio
async def test_empty_queue_succeeds(settings, capsys):
    exit_code = await async_main([], settings=settings)

    assert exit_code == 0
    assert "Uploads attempted: 0" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_unresolvable_uploads_exit_with_failure(settings):
    record = UploadRecord(ticket_id=42, local_artifact_ref="42/missing.jpg", uploaded_by="7")
    await seed(settings, record)

    exit_code = await async_main([], settings=settings)

    assert exit_code == 1
    store = await load(settings)
    assert store.get(record.id).status == UploadStatus.FAILED


@pytest.mark.asyncio
async def test_cleanup_removes_synced(settings, capsys):
    synced = UploadRecord(
        ticket_id=1, local_artifact_ref="1/a.jpg", uploaded_by="7", status=UploadStatus.SYNCED
    )
    pending = UploadRecord(ticket_id=2, local_artifact_ref="2/b.jpg", uploaded_by="7")
    await seed(settings, synced, pending)

    exit_code = await async_main(["--offline", "--cleanup"], settings=settings)

    assert exit_code == 0
    assert "Synced records removed: 1" in capsys.readouterr().out
    store = await load(settings)
    assert [r.id for r in store.get_all()] == [pending.id]


def test_format_record():
    record = UploadRecord(
        ticket_id=42, local_artifact_ref="42/a.jpg", uploaded_by="7", stage=MediaStage.POST
    )
    record.mark_failed("Server error (503): unavailable")

    line = format_record(record)

    assert "ticket=42" in line
    assert "stage=post" in line
    assert "status=failed" in line
    assert "error=Server error (503)" in line
