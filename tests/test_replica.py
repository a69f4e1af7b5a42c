import pytest

from pulse.client.replica import LocalReplica
from pulse.domain.models.proposal import ProposalStatus
from pulse.domain.schemas.messages import parse_outbound

from conftest import envelope


async def register(lifecycle, connect, user_id):
    conn, session = connect(user_id)
    await lifecycle.receive(session, envelope("REGISTER_USER", userId=user_id))
    return conn, session


def replay(conn) -> LocalReplica:
    replica = LocalReplica()
    for frame in conn.sent:
        replica.apply(parse_outbound(frame))
    return replica


@pytest.mark.asyncio
async def test_replica_converges_on_server_state(lifecycle, connect):
    a, session_a = await register(lifecycle, connect, "u1")
    b, session_b = await register(lifecycle, connect, "u2")

    for title in ("Garden", "Library"):
        await lifecycle.receive(
            session_a,
            envelope("ADD_PROPOSAL", title=title, description="d", creatorId="u1", treasuryPhone="+254700"),
        )
    proposal = lifecycle.store.get_proposals()[0]
    await lifecycle.receive(session_b, envelope("ADD_COMMENT", proposalId=proposal.id, content="+1", userId="u2"))
    await lifecycle.receive(session_b, envelope("ADD_VOTE", proposalId=proposal.id, inFavor=True, userId="u2"))
    await lifecycle.receive(session_b, envelope("ADD_VOTE", proposalId=proposal.id, inFavor=False, userId="u2"))
    await lifecycle.receive(session_a, envelope("UPDATE_PROPOSAL_STATUS", proposalId=proposal.id, status="rejected"))

    for conn in (a, b):
        replica = replay(conn)
        assert replica.proposals == lifecycle.store.get_proposals()
        assert replica.users == lifecycle.store.get_users()

    replica_a = replay(a)
    assert replica_a.current_user.id == "u1"
    assert replica_a.proposal(proposal.id).status == ProposalStatus.REJECTED


@pytest.mark.asyncio
async def test_replica_tracks_departures_and_first_user(lifecycle, connect):
    _, session_a = await register(lifecycle, connect, "u1")
    b, _ = await register(lifecycle, connect, "u2")

    await lifecycle.close(session_a)

    replica = replay(b)
    assert [u.id for u in replica.users] == ["u2"]
    assert replica.current_user.is_first_user is True


@pytest.mark.asyncio
async def test_replica_records_errors(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")

    await lifecycle.receive(session, envelope("ADD_VOTE", proposalId="missing", inFavor=True, userId="u1"))

    assert replay(a).last_error == "Proposal not found"
