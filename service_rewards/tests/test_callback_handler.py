"""
Unit tests for CallbackHandler.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from mocks.key_server.server import sign_callback_query
from service_rewards.app.verification.handler import CallbackHandler
from service_rewards.app.verification.models import CallbackRequest, VerificationOutcome
from shared.errors import KeyFetchError
from shared.metrics import MetricsCollector


class TestCallbackRequest:
    """Test cases for CallbackRequest parsing."""

    def test_keeps_order_and_raw_values(self):
        request = CallbackRequest.from_query_string(b"b=2&a=%2F&key_id=K1&signature=S")

        assert request.params == (("b", "2"), ("a", "%2F"), ("key_id", "K1"), ("signature", "S"))
        assert request.raw_query == "b=2&a=%2F&key_id=K1&signature=S"

    def test_get_decodes_first_value(self):
        request = CallbackRequest.from_query_string("reward_item=Gold+Coins&reward_item=other")

        assert request.get("reward_item") == "Gold Coins"

    def test_missing_and_empty_values_are_none(self):
        request = CallbackRequest.from_query_string("key_id=&other=1")

        assert request.key_id is None
        assert request.signature is None

    def test_no_query(self):
        request = CallbackRequest.from_query_string(None)

        assert request.raw_query == ""
        assert request.params == ()


class TestCallbackHandler:
    """Test cases for CallbackHandler."""

    @pytest.fixture
    def key_store(self, public_key_pem):
        store = MagicMock()
        store.get_key_pem = AsyncMock(return_value=public_key_pem)
        return store

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("rewards")

    @pytest.fixture
    def handler(self, key_store, metrics):
        return CallbackHandler(key_store, metrics=metrics)

    @pytest.mark.asyncio
    async def test_valid_callback_accepted(self, handler, key_store, signing_key, metrics):
        query = sign_callback_query(signing_key, "ad_network=x&transaction_id=T1&reward_amount=10", "K1")

        result = await handler.handle(CallbackRequest.from_query_string(query))

        assert result.outcome is VerificationOutcome.ACCEPTED
        assert result.accepted
        assert result.reason is None
        assert result.key_id == "K1"
        key_store.get_key_pem.assert_awaited_once_with("K1")
        assert metrics.registry.get_sample_value(
            "reward_verifications_total", {"outcome": "accepted", "reason": "none"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_tampered_parameter_rejected(self, handler, signing_key):
        query = sign_callback_query(signing_key, "ad_network=x&reward_amount=10", "K1")
        tampered = query.replace("reward_amount=10", "reward_amount=1000")

        result = await handler.handle(CallbackRequest.from_query_string(tampered))

        assert result.outcome is VerificationOutcome.REJECTED
        assert result.reason == "SIGNATURE_MISMATCH"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "ad_network=x", "key_id=K1", "signature=SIG", "key_id=&signature="])
    async def test_missing_parameters_are_probe(self, handler, key_store, query):
        """Console connectivity probes carry no signature and are not verified."""
        result = await handler.handle(CallbackRequest.from_query_string(query))

        assert result.outcome is VerificationOutcome.INDETERMINATE
        assert not result.accepted
        key_store.get_key_pem.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_key_rejected(self, handler, key_store, signing_key):
        key_store.get_key_pem = AsyncMock(return_value=None)
        query = sign_callback_query(signing_key, "ad_network=x", "missing")

        result = await handler.handle(CallbackRequest.from_query_string(query))

        assert result.outcome is VerificationOutcome.REJECTED
        assert result.reason == "KEY_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_key_fetch_failure_rejected(self, handler, key_store, signing_key):
        key_store.get_key_pem = AsyncMock(side_effect=KeyFetchError())
        query = sign_callback_query(signing_key, "ad_network=x", "K1")

        result = await handler.handle(CallbackRequest.from_query_string(query))

        assert result.outcome is VerificationOutcome.REJECTED
        assert result.reason == "KEY_FETCH_FAILURE"

    @pytest.mark.asyncio
    async def test_empty_canonical_message_rejected(self, key_store, metrics):
        """An empty message is never trivially valid."""
        canonicalizer = MagicMock()
        canonicalizer.canonicalize.return_value = b""
        verifier = MagicMock()
        handler = CallbackHandler(key_store, verifier=verifier, canonicalizer=canonicalizer, metrics=metrics)

        result = await handler.handle(CallbackRequest.from_query_string("key_id=K1&signature=SIG"))

        assert result.outcome is VerificationOutcome.REJECTED
        assert result.reason == "MALFORMED_REQUEST"
        verifier.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_malformed_pem_is_internal_error(self, handler, key_store, signing_key, metrics):
        """An unparsable published key is an internal failure, not a bad signature."""
        key_store.get_key_pem = AsyncMock(return_value="-----BEGIN PUBLIC KEY-----\ngarbage\n-----END PUBLIC KEY-----")
        query = sign_callback_query(signing_key, "ad_network=x", "K1")

        result = await handler.handle(CallbackRequest.from_query_string(query))

        assert result.outcome is VerificationOutcome.REJECTED
        assert result.reason == "INTERNAL_ERROR"
        assert metrics.registry.get_sample_value(
            "reward_verifications_total", {"outcome": "rejected", "reason": "INTERNAL_ERROR"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_accepted_callback_logs_reward_fields(self, handler, signing_key):
        query = sign_callback_query(signing_key, "ad_unit=u1&reward_amount=10&transaction_id=T1", "K1")
        handler.logger = MagicMock()

        await handler.handle(CallbackRequest.from_query_string(query))

        handler.logger.info.assert_called_once_with(
            "reward_verified", key_id="K1", ad_unit="u1", reward_amount="10", transaction_id="T1"
        )

    @pytest.mark.asyncio
    async def test_unexpected_failure_rejected_not_raised(self, handler, key_store, metrics):
        key_store.get_key_pem = AsyncMock(side_effect=RuntimeError("boom"))

        result = await handler.handle(CallbackRequest.from_query_string("key_id=K1&signature=SIG"))

        assert result.outcome is VerificationOutcome.REJECTED
        assert result.reason == "INTERNAL_ERROR"
        assert metrics.registry.get_sample_value(
            "reward_verifications_total", {"outcome": "rejected", "reason": "INTERNAL_ERROR"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_works_without_metrics(self, key_store, signing_key):
        handler = CallbackHandler(key_store)
        query = sign_callback_query(signing_key, "ad_network=x", "K1")

        result = await handler.handle(CallbackRequest.from_query_string(query))

        assert result.outcome is VerificationOutcome.ACCEPTED
