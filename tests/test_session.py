import pytest

from domain.session import SessionContext, SessionState


def walk(context, *states):
    for state in states:
        context.advance(state)


class TestSessionContext:
    def test_forward_transitions_are_recorded(self):
        context = SessionContext(session_id=1, principal="fiona")

        walk(context, SessionState.AUTHENTICATED, SessionState.PROVISIONED,
             SessionState.INTERACTIVE, SessionState.CLOSED)

        assert context.history == (
            SessionState.CONNECTED, SessionState.AUTHENTICATED, SessionState.PROVISIONED,
            SessionState.INTERACTIVE, SessionState.CLOSED)
        assert context.is_closed

    @pytest.mark.parametrize("path", [
        (),
        (SessionState.AUTHENTICATED,),
        (SessionState.AUTHENTICATED, SessionState.PROVISIONED),
    ])
    def test_close_is_allowed_from_any_open_state(self, path):
        context = SessionContext(session_id=1, principal="fiona")
        walk(context, *path)

        context.advance(SessionState.CLOSED)

        assert context.state is SessionState.CLOSED

    def test_states_cannot_be_skipped(self):
        context = SessionContext(session_id=1, principal="fiona")

        with pytest.raises(ValueError):
            context.advance(SessionState.INTERACTIVE)
        assert context.state is SessionState.CONNECTED

    def test_states_cannot_go_backwards(self):
        context = SessionContext(session_id=1, principal="fiona")
        walk(context, SessionState.AUTHENTICATED, SessionState.PROVISIONED)

        with pytest.raises(ValueError):
            context.advance(SessionState.AUTHENTICATED)

    def test_closed_is_terminal(self):
        context = SessionContext(session_id=1, principal="fiona")
        context.advance(SessionState.CLOSED)

        with pytest.raises(ValueError):
            context.advance(SessionState.CLOSED)
        with pytest.raises(ValueError):
            context.advance(SessionState.AUTHENTICATED)

    @pytest.mark.parametrize("principal,package,display", [
        ("[hc-cargo-cult]", "hc-cargo-cult", "hc-cargo-cult"),
        ("fiona", None, "fiona"),
        ("[]", None, "[]"),
        ("[a][b]", None, "[a][b]"),
        ("x[bat]", None, "x[bat]"),
    ])
    def test_highlighted_package(self, principal, package, display):
        context = SessionContext(session_id=1, principal=principal)

        assert context.highlighted_package == package
        assert context.display_name == display
