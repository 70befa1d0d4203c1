import pytest
from fastapi.testclient import TestClient

from sealedkyc import LocalDecryptionOracle, ManualClock, SealedKYCService
from sealedkyc.api import create_app

OWNER = "owner"
PROVIDER = "provider-1"


@pytest.fixture
def clock():
    return ManualClock(start=1000)


@pytest.fixture
def oracle():
    return LocalDecryptionOracle()


@pytest.fixture
def service(oracle, clock):
    svc = SealedKYCService(owner=OWNER, oracle=oracle, clock=clock)
    svc.add_provider(OWNER, PROVIDER)
    return svc


@pytest.fixture
def client(service):
    return TestClient(create_app(service))
