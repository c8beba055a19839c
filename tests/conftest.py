import io
import json

import pytest
from PIL import Image, ImageDraw
from werkzeug.datastructures import FileStorage

from config import Config
from services.database import init_db, reset_db
from services.presets import Preset, PresetOption
from services.record_store import RecordType

CATALOG = [
    {
        "name": "Gamma",
        "category": ["Plain"],
        "message": "Paint this photo in watercolor.",
    },
    {
        "name": "Alpha",
        "category": ["Fun"],
        "message": "Turn everyone into animals.\nPick one using the random seed modulo 3:\n- 0: Dogs\n- 1: Cats\n- 2: Birds",
    },
    {
        "name": "Beta",
        "category": ["Time"],
        "message": "Move the scene to another era.",
        "options": [{"id": "001", "text": "Roaring twenties"}, {"id": "002", "text": "Far future"}],
        "randomizeOptions": False,
    },
    {"name": "Broken", "message": "No category list here."},
]


@pytest.fixture(scope="session")
def test_storage(tmp_path_factory):
    base = tmp_path_factory.mktemp("storage")
    db_path = base / "test.db"
    database_url = f"sqlite:///{db_path}"
    init_db(database_url)

    catalog_path = base / "presets.json"
    catalog_path.write_text(json.dumps(CATALOG), encoding="utf-8")

    return {
        "STORAGE_DIR": base,
        "DATABASE_URL": database_url,
        "PRESETS_PATH": catalog_path,
    }


@pytest.fixture(autouse=True)
def clean_database(test_storage):
    reset_db()
    yield


@pytest.fixture
def app(test_storage):
    from app import create_app

    class TestConfig(Config):
        TESTING = True
        STORAGE_DIR = test_storage["STORAGE_DIR"]
        DATABASE_URL = test_storage["DATABASE_URL"]
        PRESETS_PATH = test_storage["PRESETS_PATH"]
        GEMINI_API_KEY = "test-key"
        MASTER_PROMPT_ENABLED = False
        MASTER_PROMPT_TEXT = ""
        ASPECT_RATIO = "none"

    application = create_app(TestConfig)
    application.config["SEED_PROVIDER"] = lambda: 1007
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def base_presets():
    return [
        Preset(name="Alpha", message="alpha message", category=("Fun",)),
        Preset(name="Beta", message="beta message", category=("Time",)),
        Preset(name="Gamma", message="gamma message"),
    ]


class StubRecordStore:
    """In-memory record store with the same contract as SqlRecordStore."""

    def __init__(self, rows=None):
        self.rows = {row["id"]: row for row in rows or []}

    def read_all(self):
        return list(self.rows.values())

    def upsert(self, record):
        self.rows[record.id] = record.to_dict()

    def delete(self, record_ids):
        for record_id in record_ids:
            self.rows.pop(record_id, None)

    def delete_types(self, record_types):
        values = {RecordType(record_type).value for record_type in record_types}
        self.rows = {key: row for key, row in self.rows.items() if row["type"] not in values}

    def clear(self):
        self.rows = {}


class StubHistory:
    def __init__(self):
        self.calls = []

    def add_selection(self, preset_name, text):
        self.calls.append((preset_name, text))


@pytest.fixture
def record_store():
    return StubRecordStore()


@pytest.fixture
def history():
    return StubHistory()


@pytest.fixture
def structured_preset():
    return Preset(
        name="Structured",
        message="Base message.",
        options=(PresetOption(id="001", text="A"), PresetOption(id="002", text="B")),
        randomize_options=False,
    )


@pytest.fixture
def sample_upload():
    def factory():
        image = Image.new("RGB", (200, 200), color="white")
        draw = ImageDraw.Draw(image)
        draw.ellipse((50, 50, 150, 150), outline="black", width=4)
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG")
        data = buffer.getvalue()
        return FileStorage(
            stream=io.BytesIO(data),
            filename="capture.jpg",
            content_type="image/jpeg",
        )

    return factory
