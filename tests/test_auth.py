from types import SimpleNamespace

import pytest

import auth


class FakeSession:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture()
def fake_st(monkeypatch):
    st = SimpleNamespace(user={"is_logged_in": False}, session_state={}, logged_out=False)

    def logout():
        st.logged_out = True

    st.logout = logout
    monkeypatch.setattr(auth, "_st", st)
    return st


def test_signed_out_user_is_none(fake_st):
    assert auth.get_current_user() is None
    assert auth.get_display_name() is None


def test_user_id_prefers_subject(fake_st):
    fake_st.user = {"is_logged_in": True, "sub": "google-123", "email": "a@example.com", "name": "Ana"}
    assert auth.get_current_user() == "google-123"
    assert auth.get_display_name() == "Ana"


def test_user_id_falls_back_to_email(fake_st):
    fake_st.user = {"is_logged_in": True, "email": "a@example.com"}
    assert auth.get_current_user() == "a@example.com"
    assert auth.get_display_name() == "a@example.com"


def test_signed_in_user_passes_require_auth(fake_st):
    fake_st.user = {"is_logged_in": True, "sub": "u1"}
    assert auth.require_auth() is True


def test_logout_closes_tracker_session(fake_st):
    session = FakeSession()
    fake_st.session_state["tracker_session"] = session

    auth.logout()

    assert session.closed
    assert "tracker_session" not in fake_st.session_state
    assert fake_st.logged_out


def test_without_streamlit_nobody_is_signed_in(monkeypatch):
    monkeypatch.setattr(auth, "_st", None)
    assert auth.get_current_user() is None
    assert auth.require_auth() is False


def test_signed_out_user_sees_login_screen(fake_st):
    shown = []
    fake_st.title = lambda text: shown.append(("title", text))
    fake_st.write = lambda text: shown.append(("write", text))
    fake_st.caption = lambda text: shown.append(("caption", text))
    fake_st.button = lambda label, **kwargs: True
    fake_st.login = lambda: shown.append(("login", None))

    assert auth.require_auth() is False
    assert [kind for kind, _ in shown] == ["title", "write", "login", "caption"]
    assert not hasattr(auth, "st")
