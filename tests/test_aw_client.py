"""Tests for ActivityWatch client."""

import pytest
from requests.exceptions import ConnectionError, Timeout, TooManyRedirects

import responses
from responses import matchers

from aw_conjure_integration.sync.aw_client import AWClient, AWClientError

BASE = "http://localhost:5600/api/0"


class TestAWClient:
    """Tests for AWClient."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = AWClient()

    def teardown_method(self):
        """Clean up."""
        self.client.close()

    def test_base_url(self):
        """Test host and port make up the API root."""
        client = AWClient(host="127.0.0.1", port=5666)
        assert client.base_url == "http://127.0.0.1:5666/api/0/"
        client.close()

    @responses.activate
    def test_query_posts_program_and_timeperiods(self):
        """Test the query endpoint receives both timeperiods and program lines."""
        timeperiods = ["2024-01-01T00:00:00.000Z/2024-01-01T00:15:00.000Z"]
        program = ['events = query_bucket("x");', "RETURN = events;"]
        responses.add(
            responses.POST,
            f"{BASE}/query/",
            json=[[{"timestamp": "2024-01-01T00:00:00Z", "duration": 5, "data": {}}]],
            match=[matchers.json_params_matcher({"timeperiods": timeperiods, "query": program})],
        )

        result = self.client.query(timeperiods, program)

        assert len(result) == 1
        assert result[0][0]["duration"] == 5

    @responses.activate
    def test_query_server_error(self):
        """Test HTTP errors include the server's explanation."""
        responses.add(
            responses.POST,
            f"{BASE}/query/",
            json={"message": "Bucket not found"},
            status=500,
        )

        with pytest.raises(AWClientError, match="Bucket not found"):
            self.client.query([], [])

    @responses.activate
    def test_connection_error(self):
        """Test connection errors raise AWClientError."""
        responses.add(responses.POST, f"{BASE}/query/", body=ConnectionError("refused"))

        with pytest.raises(AWClientError, match="Cannot connect"):
            self.client.query([], [])

    @responses.activate
    def test_timeout(self):
        """Test timeouts raise AWClientError."""
        responses.add(responses.POST, f"{BASE}/query/", body=Timeout("slow"))

        with pytest.raises(AWClientError, match="timed out"):
            self.client.query([], [])

    @responses.activate
    def test_other_request_error(self):
        """Test any other requests failure raises AWClientError."""
        responses.add(responses.POST, f"{BASE}/query/", body=TooManyRedirects("loop"))

        with pytest.raises(AWClientError, match="loop"):
            self.client.query([], [])

    @responses.activate
    def test_invalid_json(self):
        """Test a non-JSON body raises AWClientError."""
        responses.add(responses.POST, f"{BASE}/query/", body="<html>", status=200)

        with pytest.raises(AWClientError, match="invalid JSON"):
            self.client.query([], [])

    @responses.activate
    def test_is_running_true(self):
        """Test is_running when the server answers."""
        responses.add(responses.GET, f"{BASE}/info", json={"version": "v0.12.2"})

        assert self.client.is_running() is True

    @responses.activate
    def test_is_running_false(self):
        """Test is_running when the server is down."""
        responses.add(responses.GET, f"{BASE}/info", body=ConnectionError("refused"))

        assert self.client.is_running() is False
