import pytest

from pulse.application.services.message_router import ConnectionState

from conftest import envelope


async def register(lifecycle, connect, user_id):
    conn, session = connect(user_id)
    await lifecycle.receive(session, envelope("REGISTER_USER", userId=user_id))
    return conn, session


async def create_proposal(lifecycle, session, title="Garden", creator="u1"):
    await lifecycle.receive(
        session,
        envelope("ADD_PROPOSAL", title=title, description="d", creatorId=creator, treasuryPhone="+254700"),
    )
    return lifecycle.store.get_proposals()[0]


@pytest.mark.asyncio
async def test_register_replies_with_ack_and_snapshot(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")

    assert a.types() == ["USER_REGISTERED", "INITIAL_DATA"]
    ack, snapshot = a.messages()
    assert ack["payload"]["id"] == "u1" and ack["payload"]["isFirstUser"] is True
    assert snapshot["payload"]["proposals"] == []
    assert [u["id"] for u in snapshot["payload"]["users"]] == ["u1"]
    assert session.state == ConnectionState.REGISTERED
    assert session.user_id == "u1"


@pytest.mark.asyncio
async def test_second_registration_notifies_others_only(lifecycle, connect):
    a, _ = await register(lifecycle, connect, "u1")
    b, _ = await register(lifecycle, connect, "u2")

    assert a.types() == ["USER_REGISTERED", "INITIAL_DATA", "NEW_USER"]
    assert a.last()["payload"]["id"] == "u2"
    assert a.last()["payload"]["isFirstUser"] is False
    assert b.types() == ["USER_REGISTERED", "INITIAL_DATA"]
    assert [u["id"] for u in b.messages()[1]["payload"]["users"]] == ["u1", "u2"]


@pytest.mark.asyncio
async def test_new_proposal_is_broadcast_to_all(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")
    b, _ = await register(lifecycle, connect, "u2")

    proposal = await create_proposal(lifecycle, session)

    for conn in (a, b):
        message = conn.last()
        assert message["type"] == "NEW_PROPOSAL"
        assert message["payload"]["id"] == proposal.id
        assert message["payload"]["status"] == "pending"
        assert message["payload"]["title"] == "Garden"


@pytest.mark.asyncio
async def test_comment_is_broadcast(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")
    proposal = await create_proposal(lifecycle, session)

    await lifecycle.receive(session, envelope("ADD_COMMENT", proposalId=proposal.id, content="Yes!", userId="u1"))

    message = a.last()
    assert message["type"] == "NEW_COMMENT"
    assert message["payload"]["proposalId"] == proposal.id
    assert message["payload"]["comment"]["content"] == "Yes!"
    assert message["payload"]["comment"]["userId"] == "u1"
    assert message["payload"]["comment"]["sentiment"] is None


@pytest.mark.asyncio
async def test_duplicate_comment_gets_explicit_error_and_no_broadcast(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")
    b, _ = await register(lifecycle, connect, "u2")
    proposal = await create_proposal(lifecycle, session)
    await lifecycle.receive(session, envelope("ADD_COMMENT", proposalId=proposal.id, content="c1", userId="u1"))
    b_before = list(b.sent)

    await lifecycle.receive(session, envelope("ADD_COMMENT", proposalId=proposal.id, content="c2", userId="u1"))

    assert a.last() == {
        "type": "ERROR",
        "payload": {"message": "User has already commented on this proposal", "code": "DuplicateCommentError"},
    }
    assert b.sent == b_before
    assert [c.content for c in proposal.comments] == ["c1"]


@pytest.mark.asyncio
async def test_vote_replacement_broadcasts_latest(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")
    proposal = await create_proposal(lifecycle, session)

    await lifecycle.receive(session, envelope("ADD_VOTE", proposalId=proposal.id, inFavor=True, userId="u1"))
    await lifecycle.receive(session, envelope("ADD_VOTE", proposalId=proposal.id, inFavor=False, userId="u1"))

    assert a.last() == {
        "type": "NEW_VOTE",
        "payload": {"proposalId": proposal.id, "vote": {"userId": "u1", "inFavor": False}},
    }
    assert [(v.user_id, v.in_favor) for v in proposal.votes] == [("u1", False)]


@pytest.mark.asyncio
async def test_vote_on_missing_proposal_is_rejected(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")

    await lifecycle.receive(session, envelope("ADD_VOTE", proposalId="nope", inFavor=True, userId="u1"))

    assert a.last()["type"] == "ERROR"
    assert a.last()["payload"]["code"] == "ProposalNotFoundError"


@pytest.mark.asyncio
async def test_status_update_broadcast(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")
    proposal = await create_proposal(lifecycle, session)

    await lifecycle.receive(session, envelope("UPDATE_PROPOSAL_STATUS", proposalId=proposal.id, status="active"))

    message = a.last()
    assert message["type"] == "UPDATE_PROPOSAL_STATUS"
    assert message["payload"]["proposalId"] == proposal.id
    assert message["payload"]["status"] == "active"
    assert message["payload"]["updatedAt"] is not None


@pytest.mark.asyncio
async def test_unknown_type_replies_error_to_sender_only(lifecycle, connect):
    a, _ = await register(lifecycle, connect, "u1")
    b, session_b = await register(lifecycle, connect, "u2")
    a_before = list(a.sent)

    await lifecycle.receive(session_b, envelope("SELF_DESTRUCT"))

    assert b.last() == {"type": "ERROR", "payload": {"message": "Unknown message type", "code": None}}
    assert a.sent == a_before


@pytest.mark.asyncio
async def test_malformed_frame_replies_error_and_keeps_state(lifecycle, connect):
    conn, session = connect("raw")

    await lifecycle.receive(session, "{not json")

    assert conn.messages() == [{"type": "ERROR", "payload": {"message": "Invalid message format", "code": None}}]
    assert lifecycle.store.get_users() == []
    assert session.state == ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_commands_before_registration_are_dispatched(lifecycle, connect):
    conn, session = connect("anon")

    await lifecycle.receive(
        session,
        envelope("ADD_PROPOSAL", title="Early", description="d", creatorId="anon", treasuryPhone="+254700"),
    )

    # Not registered, so not part of the fan-out audience
    assert conn.sent == []
    assert [p.title for p in lifecycle.store.get_proposals()] == ["Early"]


@pytest.mark.asyncio
async def test_user_disconnect_deregisters_but_keeps_user(lifecycle, connect):
    a, session = await register(lifecycle, connect, "u1")

    await lifecycle.receive(session, envelope("USER_DISCONNECT", userId="u1"))

    assert lifecycle.store.get_user("u1") is not None
    assert lifecycle.store.registry.connection_for("u1") is None
    assert session.state == ConnectionState.CONNECTED

    b, session_b = await register(lifecycle, connect, "u2")
    await create_proposal(lifecycle, session_b, creator="u2")
    assert "NEW_PROPOSAL" not in a.types()
    assert b.last()["type"] == "NEW_PROPOSAL"


@pytest.mark.asyncio
async def test_dispatch_rejects_values_outside_the_inbound_union(lifecycle, connect):
    _, session = connect("a")

    with pytest.raises(AssertionError):
        await lifecycle.router.dispatch(session, {"type": "ADD_VOTE"})

    assert lifecycle.store.get_users() == []
