import asyncio

import pytest
import requests
import responses
from responses import matchers

import reference_engine.storage.rest as rest
from reference_engine.exceptions import StoreError
from reference_engine.storage.models import ReferenceInput
from reference_engine.storage.rest import (
    ForbiddenError,
    PostgrestClient,
    RateLimitedError,
    RequestRejectedError,
    UnauthorizedError,
    UpstreamError,
)
from reference_engine.storage.supabase import SupabaseReferenceStore

TABLE_URL = "https://project.supabase.test/rest/v1/references"
AUTH_HEADERS = {"apikey": "anon-key", "Authorization": "Bearer anon-key"}
ROW = {"id": "ref-1", "conversation_id": "c1", "title": "Paper", "authors": "[]"}


@pytest.fixture
def client():
    return PostgrestClient("https://project.supabase.test/", "anon-key")


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(rest, "_backoff", lambda retry_state: 0.0)


@responses.activate
def test_writes_ask_for_the_stored_representation(client):
    prefer = {**AUTH_HEADERS, "Prefer": "return=representation"}
    responses.add(responses.POST, TABLE_URL, json=[ROW], status=201, match=[matchers.header_matcher(prefer)])
    responses.add(
        responses.PATCH,
        TABLE_URL,
        json=[ROW],
        match=[matchers.header_matcher(prefer), matchers.query_param_matcher({"id": "eq.ref-1"})],
    )

    assert client.insert({"title": "Paper"}) == ROW
    assert client.update("ref-1", {"title": "Paper"}) == ROW


@responses.activate
def test_reads_do_not_send_prefer_header(client):
    responses.add(responses.GET, TABLE_URL, json=[ROW], match=[matchers.header_matcher(AUTH_HEADERS)])

    assert client.select(conversation_id="eq.c1") == [ROW]
    assert "Prefer" not in responses.calls[0].request.headers


@responses.activate
def test_expired_key_maps_to_unauthorized_without_retry(client):
    responses.add(
        responses.GET,
        TABLE_URL,
        json={"code": "PGRST301", "message": "JWT expired", "details": None, "hint": None},
        status=401,
    )

    with pytest.raises(UnauthorizedError) as excinfo:
        client.select()

    assert excinfo.value.status == 401
    assert excinfo.value.code == "PGRST301"
    assert "JWT expired" in str(excinfo.value)
    assert len(responses.calls) == 1


@responses.activate
def test_row_level_security_denial_maps_to_forbidden(client):
    responses.add(
        responses.POST,
        TABLE_URL,
        json={"code": "42501", "message": 'new row violates row-level security policy for table "references"'},
        status=403,
    )

    with pytest.raises(ForbiddenError) as excinfo:
        client.insert({"title": "Paper"})

    assert excinfo.value.code == "42501"
    assert "row-level security" in str(excinfo.value)


@responses.activate
def test_store_reports_security_denial_as_store_error():
    responses.add(responses.POST, TABLE_URL, json={"code": "42501", "message": "permission denied"}, status=403)
    store = SupabaseReferenceStore(PostgrestClient("https://project.supabase.test", "anon-key"))

    with pytest.raises(StoreError, match=r"Forbidden: permission denied \(403\)"):
        asyncio.run(store.create_reference(ReferenceInput(conversation_id="c1", title="Paper")))


@responses.activate
def test_constraint_violation_is_rejected_with_plain_text_fallback(client):
    responses.add(responses.POST, TABLE_URL, body="bad   request\nbody", status=400)

    with pytest.raises(RequestRejectedError) as excinfo:
        client.insert({"title": "Paper"})

    assert excinfo.value.status == 400
    assert excinfo.value.code is None
    assert "bad request body" in str(excinfo.value)


@responses.activate
def test_insert_retries_service_unavailable_then_succeeds(client):
    responses.add(responses.POST, TABLE_URL, status=503, headers={"Retry-After": "0"})
    responses.add(responses.POST, TABLE_URL, json=[ROW], status=201)

    assert client.insert({"title": "Paper"}) == ROW
    assert len(responses.calls) == 2


@responses.activate
def test_persistent_outage_becomes_upstream_error(client):
    responses.add(
        responses.POST,
        TABLE_URL,
        json={"message": "maintenance"},
        status=503,
        headers={"Retry-After": "0"},
    )

    with pytest.raises(UpstreamError, match="maintenance"):
        client.insert({"title": "Paper"})

    assert len(responses.calls) == rest.RETRY_ATTEMPTS


@responses.activate
def test_rate_limit_surfaces_retry_after_once_budget_is_spent(client):
    responses.add(responses.GET, TABLE_URL, status=429, headers={"Retry-After": "0"})

    with pytest.raises(RateLimitedError) as excinfo:
        client.select()

    assert excinfo.value.retry_after == 0.0
    assert len(responses.calls) == rest.RETRY_ATTEMPTS


@responses.activate
def test_connection_errors_are_retried_then_reported(client, no_backoff):
    responses.add(responses.PATCH, TABLE_URL, body=requests.ConnectionError("refused"))

    with pytest.raises(UpstreamError, match="Request failed"):
        client.update("ref-1", {"title": "Paper"})

    assert len(responses.calls) == rest.RETRY_ATTEMPTS
