import threading
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from api.files.index import MetadataIndex
from api.files.staging import StagingArea
from core.deps import get_db, get_s3_client, get_staging_area
from main import app

TEST_UPLOAD_LIMIT = 1024 * 1024


class MockS3Client:
    """Mock S3 client for testing"""

    def __init__(self):
        self.objects = {}  # {bucket: {key: {"Body": bytes, "ContentType": str}}}
        self.put_calls = 0
        self.error_mode = None  # For simulating errors
        self.before_upload = None  # Optional hook run inside upload_fileobj
        self._lock = threading.Lock()

    def upload_fileobj(self, Fileobj, Bucket: str, Key: str, ExtraArgs=None):
        """Mock upload; stores the object only when it is fully read"""
        with self._lock:
            self.put_calls += 1

        if self.error_mode:
            self._raise_error("PutObject")

        if self.before_upload is not None:
            self.before_upload(Bucket, Key)

        body = Fileobj.read()
        with self._lock:
            self.objects.setdefault(Bucket, {})[Key] = {
                "Body": body,
                "ContentType": (ExtraArgs or {}).get("ContentType"),
            }

    def generate_presigned_url(self, ClientMethod: str, Params: dict, ExpiresIn: int = 3600):
        """Mock presigned URL with the query parameters S3 would sign"""
        url = f"https://{Params['Bucket']}.s3.amazonaws.com/{quote(Params['Key'])}"
        query = [f"X-Amz-Expires={ExpiresIn}"]
        if "ResponseContentDisposition" in Params:
            query.append(
                "response-content-disposition="
                + quote(Params["ResponseContentDisposition"], safe="")
            )
        return f"{url}?{'&'.join(query)}"

    def get_object_bytes(self, bucket: str, key: str) -> bytes:
        return self.objects[bucket][key]["Body"]

    def object_count(self) -> int:
        return sum(len(keys) for keys in self.objects.values())

    def simulate_error(self, error_type: str):
        """
        Configure client to raise specific errors

        Args:
            error_type: One of "NoSuchBucket", "AccessDenied", "NoCredentialsError"
        """
        self.error_mode = error_type

    def _raise_error(self, operation: str):
        from botocore.exceptions import ClientError, NoCredentialsError

        if self.error_mode == "NoCredentialsError":
            raise NoCredentialsError()
        messages = {
            "NoSuchBucket": "The specified bucket does not exist",
            "AccessDenied": "Access Denied",
        }
        raise ClientError(
            {
                "Error": {
                    "Code": self.error_mode,
                    "Message": messages.get(self.error_mode, "S3 failure"),
                }
            },
            operation,
        )


class RecordingStagingArea(StagingArea):
    """StagingArea that keeps every writer it hands out"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.writers = []

    def stage(self):
        writer = super().stage()
        self.writers.append(writer)
        return writer

    def all_released(self) -> bool:
        return all(writer.closed for writer in self.writers)

    def most_bytes_held(self) -> int:
        return max((writer.bytes_written for writer in self.writers), default=0)


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="index")
def index_fixture(session: Session) -> MetadataIndex:
    return MetadataIndex(session)


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client for testing"""
    return MockS3Client()


@pytest.fixture(name="staging")
def staging_fixture():
    """Staging area with a small limit so oversize payloads stay cheap"""
    return RecordingStagingArea(size_limit=TEST_UPLOAD_LIMIT, spool_bytes=4096)


@pytest.fixture(name="client")
def client_fixture(
    session: Session,
    mock_s3_client: MockS3Client,
    staging: RecordingStagingArea,
):
    def get_db_override():
        return session

    def get_s3_client_override():
        return mock_s3_client

    def get_staging_area_override():
        return staging

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_s3_client] = get_s3_client_override
    app.dependency_overrides[get_staging_area] = get_staging_area_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
