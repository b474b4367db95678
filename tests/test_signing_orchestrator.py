"""
Test suite for signing orchestration.

Tests the ordering of pretransaction and main transaction, the status
reported to the signing panel and how a request replaced mid-flight is
handled.
"""

import asyncio

import pytest

from txsigner.core.types import ActivityStatus, SigningStatus, SubmissionRequest, Transaction
from txsigner.engine.session import SigningSession
from txsigner.provider.dryrun import DryRunSigningProvider
from txsigner.provider.interface import ProviderRejection
from txsigner.state.ledger import InMemoryActivityLedger
from txsigner.state.machine import InvalidTransitionError
from tests.conftest import TOKEN_CONTRACT, TOKEN_MANAGER, USER_ADDRESS, VOTING_APP


@pytest.fixture
def pretransaction_request(direct_path, transaction_with_pretransaction) -> SubmissionRequest:
    return SubmissionRequest(path=direct_path, transaction=transaction_with_pretransaction)


# ============================================================================
# Test Successful Runs
# ============================================================================

class TestSigningSuccess:
    """Tests for runs that end with a hashed main transaction."""

    @pytest.mark.asyncio
    async def test_direct_request_signed(
        self, orchestrator, state_machine, submitter, direct_request
    ):
        """Test the full path of a direct transaction."""
        state_machine.receive(direct_request)

        result = await orchestrator.confirm()

        assert result.ok
        assert state_machine.status == SigningStatus.SIGNED
        assert state_machine.state.sign_error is None
        assert state_machine.close_scheduled is True
        assert await direct_request.result.wait() == result.transaction_hash

        await submitter.wait_idle()
        state_machine.close()

    @pytest.mark.asyncio
    async def test_pretransaction_sent_first(
        self, orchestrator, state_machine, submitter, mock_provider, ledger, pretransaction_request
    ):
        """Test that the pretransaction is hashed before the main transaction is sent."""
        mock_provider.send_gate = asyncio.Event()
        state_machine.receive(pretransaction_request)

        task = asyncio.create_task(orchestrator.confirm())
        await asyncio.sleep(0.01)

        assert len(mock_provider.send_calls) == 1
        assert mock_provider.send_calls[0].to == TOKEN_CONTRACT
        assert state_machine.status == SigningStatus.SIGNING

        mock_provider.send_gate.set()
        result = await task

        assert result.ok
        assert [tx.to for tx in mock_provider.sent] == [TOKEN_CONTRACT, VOTING_APP]
        assert [s.is_pretransaction for s in result.submissions] == [True, False]
        assert result.transaction_hash == result.submissions[1].transaction_hash

        await submitter.wait_idle()
        activities = await ledger.list_activities()
        assert [a.description for a in activities] == [
            "Allow Voting to vote yes on proposal #1",
            "Vote yes on proposal #1",
        ]
        state_machine.close()

    @pytest.mark.asyncio
    async def test_reverted_after_hash_still_signed(
        self, orchestrator, state_machine, submitter, mock_provider, ledger, direct_request
    ):
        """Test that a revert after the hash only fails the activity."""
        mock_provider.reverted.add(VOTING_APP)
        state_machine.receive(direct_request)

        result = await orchestrator.confirm()
        await submitter.wait_idle()

        assert result.ok
        assert state_machine.status == SigningStatus.SIGNED
        assert state_machine.state.sign_error is None
        assert await direct_request.result.wait() == result.transaction_hash

        record = await ledger.get_activity(result.transaction_hash)
        assert record.status == ActivityStatus.FAILED
        state_machine.close()

    @pytest.mark.asyncio
    async def test_forwarded_pretransaction_then_revert(
        self, orchestrator, state_machine, submitter, mock_provider, ledger, forwarded_path, pretransaction
    ):
        """Test a forwarded request whose main transaction reverts after both are hashed."""
        request = SubmissionRequest(
            path=forwarded_path,
            transaction=Transaction(
                from_address=USER_ADDRESS,
                to=TOKEN_MANAGER,
                data="0xd948d468",
                pretransaction=pretransaction,
            ),
        )
        mock_provider.reverted.add(TOKEN_MANAGER)
        state_machine.receive(request)

        result = await orchestrator.confirm()
        await submitter.wait_idle()

        assert result.ok
        assert state_machine.status == SigningStatus.SIGNED
        assert state_machine.state.sign_error is None
        assert await request.result.wait() == result.transaction_hash

        activities = await ledger.list_activities()
        assert len(activities) == 2
        assert [a.forwarder_address for a in activities] == [TOKEN_MANAGER, TOKEN_MANAGER]
        assert [a.status for a in activities] == [ActivityStatus.CONFIRMED, ActivityStatus.FAILED]
        assert activities[1].transaction_hash == result.transaction_hash
        state_machine.close()

    @pytest.mark.asyncio
    async def test_result_settled_once(self, orchestrator, state_machine, submitter, direct_request):
        state_machine.receive(direct_request)

        result = await orchestrator.confirm()

        assert direct_request.result.done is True
        assert direct_request.result.resolve("0x" + "00" * 32) is False
        assert await direct_request.result.wait() == result.transaction_hash

        await submitter.wait_idle()
        state_machine.close()


# ============================================================================
# Test Failed Runs
# ============================================================================

class TestSigningFailure:
    """Tests for runs that end in an error."""

    @pytest.mark.asyncio
    async def test_pretransaction_rejected(
        self, orchestrator, state_machine, mock_provider, ledger, pretransaction_request
    ):
        """Test that a declined pretransaction stops the run."""
        rejection = ProviderRejection("User denied transaction signature", code=4001)
        mock_provider.rejections[TOKEN_CONTRACT] = rejection
        state_machine.receive(pretransaction_request)

        result = await orchestrator.confirm()

        assert result.ok is False
        assert result.error is rejection
        assert len(mock_provider.send_calls) == 1
        assert mock_provider.sent == []
        assert state_machine.status == SigningStatus.ERROR
        assert state_machine.state.sign_error is rejection
        assert state_machine.close_scheduled is False
        assert await ledger.list_activities() == []

        with pytest.raises(ProviderRejection):
            await pretransaction_request.result.wait()

    @pytest.mark.asyncio
    async def test_main_transaction_rejected(
        self, orchestrator, state_machine, submitter, mock_provider, ledger, pretransaction_request
    ):
        """Test that the pretransaction activity survives a declined main transaction."""
        mock_provider.rejections[VOTING_APP] = ProviderRejection("User denied transaction signature")
        state_machine.receive(pretransaction_request)

        result = await orchestrator.confirm()
        await submitter.wait_idle()

        assert result.ok is False
        assert state_machine.status == SigningStatus.ERROR
        assert [tx.to for tx in mock_provider.sent] == [TOKEN_CONTRACT]

        activities = await ledger.list_activities()
        assert len(activities) == 1
        assert activities[0].status == ActivityStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_unexpected_error(self, orchestrator, state_machine, mock_provider, direct_request):
        """Test that any provider error ends the run in ERROR."""
        mock_provider.rejections[VOTING_APP] = RuntimeError("connection reset")
        state_machine.receive(direct_request)

        result = await orchestrator.confirm()

        assert isinstance(result.error, RuntimeError)
        assert state_machine.status == SigningStatus.ERROR
        with pytest.raises(RuntimeError):
            await direct_request.result.wait()


# ============================================================================
# Test Replaced Requests
# ============================================================================

class TestReplacedRequest:
    """Tests for requests replaced while their run is in flight."""

    @pytest.mark.asyncio
    async def test_success_does_not_touch_new_request(
        self, orchestrator, state_machine, submitter, mock_provider, direct_request,
        forwarded_path, forwarded_transaction,
    ):
        mock_provider.send_gate = asyncio.Event()
        state_machine.receive(direct_request)

        task = asyncio.create_task(orchestrator.confirm())
        await asyncio.sleep(0.01)

        new_request = SubmissionRequest(path=forwarded_path, transaction=forwarded_transaction)
        state_machine.receive(new_request)

        mock_provider.send_gate.set()
        result = await task

        assert result.ok
        assert await direct_request.result.wait() == result.transaction_hash
        assert state_machine.state.request is new_request
        assert state_machine.status == SigningStatus.CONFIRMING
        assert state_machine.close_scheduled is False
        assert new_request.result.done is False

        await submitter.wait_idle()

    @pytest.mark.asyncio
    async def test_failure_does_not_touch_new_request(
        self, orchestrator, state_machine, mock_provider, direct_request,
        forwarded_path, forwarded_transaction,
    ):
        mock_provider.send_gate = asyncio.Event()
        mock_provider.rejections[VOTING_APP] = ProviderRejection("User denied transaction signature")
        state_machine.receive(direct_request)

        task = asyncio.create_task(orchestrator.confirm())
        await asyncio.sleep(0.01)

        new_request = SubmissionRequest(path=forwarded_path, transaction=forwarded_transaction)
        state_machine.receive(new_request)

        mock_provider.send_gate.set()
        result = await task

        assert result.ok is False
        assert state_machine.status == SigningStatus.CONFIRMING
        assert state_machine.state.sign_error is None
        with pytest.raises(ProviderRejection):
            await direct_request.result.wait()


# ============================================================================
# Test Confirmation Guards
# ============================================================================

class TestConfirmGuards:
    """Tests for confirming without a confirmable request."""

    @pytest.mark.asyncio
    async def test_confirm_without_request(self, orchestrator):
        with pytest.raises(InvalidTransitionError):
            await orchestrator.confirm()

    @pytest.mark.asyncio
    async def test_confirm_after_close(self, orchestrator, state_machine, mock_provider, direct_request):
        """Test that a closed panel cannot be confirmed."""
        state_machine.receive(direct_request)
        state_machine.close()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await orchestrator.confirm()

        assert exc_info.value.current == SigningStatus.CONFIRMING
        assert mock_provider.send_calls == []

    @pytest.mark.asyncio
    async def test_confirm_twice(self, orchestrator, state_machine, submitter, direct_request):
        """Test that a signed request cannot be signed again."""
        state_machine.receive(direct_request)
        await orchestrator.confirm()

        with pytest.raises(InvalidTransitionError):
            await orchestrator.confirm()

        await submitter.wait_idle()
        state_machine.close()


# ============================================================================
# Test Signing Session
# ============================================================================

class TestSigningSession:
    """Tests for the session facade."""

    @pytest.mark.asyncio
    async def test_request_confirm_close(self, registry, direct_path, direct_transaction, test_config):
        """Test a full session against the dry-run provider."""
        provider = DryRunSigningProvider()
        ledger = InMemoryActivityLedger()
        session = SigningSession(provider, ledger, registry, account_query=provider, config=test_config)

        closed = []
        session.state_machine.on_close(lambda: closed.append(True))

        request = session.request(direct_path, direct_transaction)
        assert session.state.opened is True
        assert session.state.intent.name == "Voting"

        result = await session.confirm()
        assert await request.result.wait() == result.transaction_hash

        await session.wait_idle()
        record = await ledger.get_activity(result.transaction_hash)
        assert record.status == ActivityStatus.CONFIRMED
        assert record.nonce == 0

        # Signed panels close themselves
        await asyncio.sleep(test_config.close_delay_seconds * 3)
        assert closed == [True]
        assert session.state.opened is False
        assert session.transition_ended(False) is True
        assert session.state.request is None

        await session.aclose()

    @pytest.mark.asyncio
    async def test_repeated_request_ignored(self, registry, direct_request, test_config):
        session = SigningSession(DryRunSigningProvider(), InMemoryActivityLedger(), registry, config=test_config)

        assert session.receive(direct_request) is True
        assert session.receive(direct_request) is False

    @pytest.mark.asyncio
    async def test_dry_run_rejection(self, registry, direct_request, test_config):
        provider = DryRunSigningProvider(reject=[VOTING_APP])
        session = SigningSession(provider, InMemoryActivityLedger(), registry, config=test_config)

        session.receive(direct_request)
        result = await session.confirm()

        assert isinstance(result.error, ProviderRejection)
        assert result.error.code == 4001
        assert session.state.status == SigningStatus.ERROR
        assert session.close() is True
