"""Tests for the synchronous REST client (GDetectClient)."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
import responses
from responses import matchers

from gdetect_sdk.client import GDetectClient
from gdetect_sdk.config import RetryPolicy
from gdetect_sdk.exceptions import (
    GDetectBadTokenError,
    GDetectDecodeError,
    GDetectFileError,
    GDetectHTTPError,
    GDetectInvalidEndpointError,
    GDetectNotSupportedError,
    GDetectSubmissionRejectedError,
)
from gdetect_sdk.models import ProfileStatus, SubmitOptions
from tests.conftest import BASE, DETECT, SYNDETECT, TOKEN


@pytest.fixture()
def client() -> GDetectClient:
    return GDetectClient(BASE, TOKEN)


@pytest.fixture()
def syndetect_client() -> GDetectClient:
    return GDetectClient(BASE, TOKEN, syndetect=True)


# ------------------------------------------------------------------ #
# construction
# ------------------------------------------------------------------ #


class TestConstruction:
    @responses.activate
    def test_bad_token(self):
        with pytest.raises(GDetectBadTokenError):
            GDetectClient(BASE, "not-a-token")
        assert len(responses.calls) == 0

    def test_invalid_endpoint(self):
        with pytest.raises(GDetectInvalidEndpointError):
            GDetectClient("gdetect.test/api", TOKEN)

    def test_insecure_session(self):
        assert GDetectClient(BASE, TOKEN, insecure=True)._session.verify is False
        assert GDetectClient(BASE, TOKEN)._session.verify is True


# ------------------------------------------------------------------ #
# submit_file
# ------------------------------------------------------------------ #


class TestSubmitFile:
    @responses.activate
    def test_valid(self, client: GDetectClient, sample_file: Path):
        rsp = responses.post(f"{DETECT}/submit", json={"uuid": "1234", "status": True})
        uuid = client.submit_file(sample_file, SubmitOptions(description="valid test"))
        assert uuid == "1234"
        assert rsp.call_count == 1
        request = responses.calls[0].request
        assert request.headers["X-Auth-Token"] == TOKEN
        assert b'name="file"; filename="false_mirai"' in request.body
        assert b'name="description"' in request.body
        assert b"valid test" in request.body
        assert b"bypass-cache" not in request.body

    @responses.activate
    def test_all_form_fields(self, client: GDetectClient, sample_file: Path):
        responses.post(f"{DETECT}/submit", json={"uuid": "12345", "status": True})
        options = SubmitOptions(
            tags=("tag1", "tag2"),
            description="file params",
            bypass_cache=True,
            archive_password="test",
            filename="renamed.bin",
        )
        assert client.submit_file(sample_file, options) == "12345"
        body = responses.calls[0].request.body
        assert b'filename="renamed.bin"' in body
        assert b'name="bypass-cache"\r\n\r\ntrue' in body
        assert b'name="tags"\r\n\r\ntag1,tag2' in body
        assert b'name="archive_password"\r\n\r\ntest' in body

    @responses.activate
    def test_bytes(self, client: GDetectClient, sample_bytes: bytes):
        responses.post(f"{DETECT}/submit", json={"uuid": "1234", "status": True})
        assert client.submit_file(sample_bytes) == "1234"
        assert b'filename="file"' in responses.calls[0].request.body

    @responses.activate
    def test_stream(self, client: GDetectClient, sample_bytes: bytes):
        responses.post(f"{DETECT}/submit", json={"uuid": "1234", "status": True})
        stream = io.BytesIO(sample_bytes)
        assert client.submit_file(stream, SubmitOptions(filename="stream.bin")) == "1234"
        assert b'filename="stream.bin"' in responses.calls[0].request.body

    @responses.activate
    def test_file_not_found(self, client: GDetectClient):
        with pytest.raises(GDetectFileError):
            client.submit_file("/nonexistent/file.bin")
        assert len(responses.calls) == 0

    @responses.activate
    def test_status_false(self, client: GDetectClient, sample_file: Path):
        responses.post(f"{DETECT}/submit", json={"status": False, "error": "quota exceeded"})
        with pytest.raises(GDetectSubmissionRejectedError, match="quota exceeded"):
            client.submit_file(sample_file)

    @responses.activate
    def test_unauthorized(self, client: GDetectClient, sample_file: Path):
        responses.post(
            f"{DETECT}/submit", json={"status": False, "error": "unauthorized"}, status=401
        )
        with pytest.raises(GDetectHTTPError) as info:
            client.submit_file(sample_file)
        assert info.value.code == 401
        assert info.value.status == "401 Unauthorized"
        assert "unauthorized" in info.value.body

    @responses.activate
    def test_bad_json(self, client: GDetectClient, sample_file: Path):
        responses.post(f"{DETECT}/submit", body='{"uuid":"1234", "status": false')
        with pytest.raises(GDetectDecodeError) as info:
            client.submit_file(sample_file)
        assert info.value.raw_length == len('{"uuid":"1234", "status": false')

    @responses.activate
    def test_not_retried(self, sample_file: Path):
        c = GDetectClient(BASE, TOKEN, retry=RetryPolicy(max_retries=3, base_delay=0.001))
        rsp = responses.post(f"{DETECT}/submit", json={"error": "busy"}, status=503)
        with pytest.raises(GDetectHTTPError):
            c.submit_file(sample_file)
        assert rsp.call_count == 1

    @responses.activate
    def test_syndetect(self, syndetect_client: GDetectClient, sample_file: Path):
        responses.post(f"{SYNDETECT}/submit", json={"id": "1234", "status": True})
        assert syndetect_client.submit_file(sample_file) == "1234"


# ------------------------------------------------------------------ #
# lookups
# ------------------------------------------------------------------ #


class TestGetResultByUUID:
    @responses.activate
    def test_valid(self, client: GDetectClient):
        responses.get(
            f"{DETECT}/results/1234_valid_test",
            json={"uuid": "1234_valid_test", "status": True, "done": True},
        )
        result = client.get_result_by_uuid("1234_valid_test")
        assert result.uuid == "1234_valid_test"
        assert result.done is True

    @responses.activate
    @pytest.mark.parametrize("status", [404, 500])
    def test_error_status(self, client: GDetectClient, status: int):
        responses.get(f"{DETECT}/results/1234", json={"status": False}, status=status)
        with pytest.raises(GDetectHTTPError) as info:
            client.get_result_by_uuid("1234")
        assert info.value.code == status

    @responses.activate
    def test_bad_json(self, client: GDetectClient):
        responses.get(f"{DETECT}/results/1234", body='{"uuid":"1234", "status": true "done": true')
        with pytest.raises(GDetectDecodeError):
            client.get_result_by_uuid("1234")

    @responses.activate
    def test_syndetect(self, syndetect_client: GDetectClient):
        responses.get(f"{SYNDETECT}/results/1234", json={"id": "1234", "done": True})
        assert syndetect_client.get_result_by_uuid("1234").uuid == "1234"


class TestMistypedMembers:
    @responses.activate
    @pytest.mark.parametrize(
        "body",
        [
            '{"uuid": "1", "done": true, "threats": ["x"]}',
            '{"uuid": "1", "done": true, "files": ["x"]}',
            '{"uuid": "1", "done": true, "errors": ["x"]}',
            '{"uuid": "1", "files": [{"av_results": ["x"]}]}',
            '{"uuid": "1", "threats": {"abc": {"tags": ["x"]}}}',
        ],
    )
    def test_result(self, client: GDetectClient, body: str):
        responses.get(f"{DETECT}/results/1", body=body)
        with pytest.raises(GDetectDecodeError) as info:
            client.get_result_by_uuid("1")
        assert info.value.raw_length == len(body)

    @responses.activate
    @pytest.mark.parametrize(
        "body", ['{"count": 1, "submissions": ["x"]}', '{"count": 1, "submissions": 3}']
    )
    def test_results_rows(self, client: GDetectClient, body: str):
        responses.get(f"{DETECT}/results", body=body)
        with pytest.raises(GDetectDecodeError):
            client.get_results()

    @responses.activate
    def test_search(self, client: GDetectClient):
        responses.get(f"{DETECT}/search/abcd", body='{"uuid": "1", "threats": [1]}')
        with pytest.raises(GDetectDecodeError):
            client.get_result_by_sha256("abcd")


class TestGetResultBySHA256:
    @responses.activate
    def test_valid(self, client: GDetectClient):
        responses.get(f"{DETECT}/search/abcd", json={"uuid": "1234", "done": True, "is_malware": True})
        result = client.get_result_by_sha256("abcd")
        assert result.uuid == "1234"
        assert result.is_malware is True

    @responses.activate
    @pytest.mark.parametrize("status", [403, 404, 500])
    def test_error_status(self, client: GDetectClient, status: int):
        responses.get(f"{DETECT}/search/abcd", json={"status": False}, status=status)
        with pytest.raises(GDetectHTTPError):
            client.get_result_by_sha256("abcd")

    @responses.activate
    def test_not_supported_by_syndetect(self, syndetect_client: GDetectClient):
        with pytest.raises(GDetectNotSupportedError):
            syndetect_client.get_result_by_sha256("abcd")
        assert len(responses.calls) == 0


class TestGetFullSubmission:
    @responses.activate
    def test_valid(self, client: GDetectClient):
        responses.get(f"{DETECT}/results/1234/full", json={"uuid": "1234", "analysis": {"a": [1]}})
        assert client.get_full_submission_by_uuid("1234") == {"uuid": "1234", "analysis": {"a": [1]}}

    @responses.activate
    def test_not_found(self, client: GDetectClient):
        responses.get(f"{DETECT}/results/1234/full", json={"status": False}, status=404)
        with pytest.raises(GDetectHTTPError):
            client.get_full_submission_by_uuid("1234")

    @responses.activate
    def test_not_supported_by_syndetect(self, syndetect_client: GDetectClient):
        with pytest.raises(GDetectNotSupportedError):
            syndetect_client.get_full_submission_by_uuid("1234")
        assert len(responses.calls) == 0


class TestGetResults:
    @responses.activate
    def test_results(self, client: GDetectClient):
        responses.get(
            f"{DETECT}/results",
            json={
                "count": 2,
                "submissions": [
                    {"uuid": "50e42d45-d837-4dca-9017-5f02284633be", "is_malware": True},
                    {"uuid": "99f59137-ec95-4927-b766-3d905be9d05d", "is_malware": False},
                ],
            },
            match=[matchers.query_param_matcher({"from": "0", "size": "20"})],
        )
        submissions = client.get_results()
        assert [s.uuid for s in submissions] == [
            "50e42d45-d837-4dca-9017-5f02284633be",
            "99f59137-ec95-4927-b766-3d905be9d05d",
        ]
        assert submissions[0].is_malware is True

    @responses.activate
    def test_pagination_and_tag(self, client: GDetectClient):
        responses.get(
            f"{DETECT}/results",
            json={"count": 0, "submissions": []},
            match=[matchers.query_param_matcher({"from": "40", "size": "10", "tags": "first"})],
        )
        assert client.get_results(40, 10, ["first", "second"]) == []

    @responses.activate
    def test_not_found_is_empty(self, client: GDetectClient):
        responses.get(f"{DETECT}/results", json={"status": False, "error": "not found"}, status=404)
        assert client.get_results() == []

    @responses.activate
    def test_server_error(self, client: GDetectClient):
        responses.get(f"{DETECT}/results", body="internal server error", status=500)
        with pytest.raises(GDetectHTTPError):
            client.get_results()

    @responses.activate
    def test_bad_json(self, client: GDetectClient):
        responses.get(f"{DETECT}/results", body='{"count": invalid json')
        with pytest.raises(GDetectDecodeError):
            client.get_results()


class TestGetProfileStatus:
    @responses.activate
    def test_valid(self, client: GDetectClient):
        responses.get(
            f"{DETECT}/status",
            json={
                "daily_quota": 1000,
                "available_daily_quota": 997,
                "cache": True,
                "estimated_analysis_duration": 202,
                "malware_threshold": 1000,
            },
        )
        assert client.get_profile_status() == ProfileStatus(
            daily_quota=1000,
            available_daily_quota=997,
            cache=True,
            estimated_analysis_duration=202,
            malware_threshold=1000,
        )

    @responses.activate
    def test_bad_status(self, client: GDetectClient):
        responses.get(f"{DETECT}/status", json={}, status=418)
        with pytest.raises(GDetectHTTPError):
            client.get_profile_status()

    @responses.activate
    def test_bad_body(self, client: GDetectClient):
        responses.get(f"{DETECT}/status", body='{"dai')
        with pytest.raises(GDetectDecodeError):
            client.get_profile_status()

    @responses.activate
    def test_not_supported_by_syndetect(self, syndetect_client: GDetectClient):
        with pytest.raises(GDetectNotSupportedError):
            syndetect_client.get_profile_status()
        assert len(responses.calls) == 0


class TestGetAPIVersion:
    @responses.activate
    def test_valid(self, client: GDetectClient):
        responses.get(
            f"{BASE}/api/versions",
            json={"/api/expert/v2": "2.6.1", "/api/lite/v1": "1.0.2", "/api/lite/v2": "2.5.0"},
        )
        assert client.get_api_version() == "2.5.0"

    @responses.activate
    def test_version_not_exposed(self, client: GDetectClient):
        responses.get(f"{BASE}/api/versions", json={"/api/expert/v2": "2.6.1", "/api/lite/v1": "1.0.2"})
        with pytest.raises(GDetectNotSupportedError) as info:
            client.get_api_version()
        assert info.value.version == "unknown"

    @responses.activate
    def test_bad_status(self, client: GDetectClient):
        responses.get(f"{BASE}/api/versions", json={}, status=418)
        with pytest.raises(GDetectHTTPError):
            client.get_api_version()
