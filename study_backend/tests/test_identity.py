from studydesk.client.identity import FirebaseIdentityProvider, IdentitySession, StaticIdentityProvider
from studydesk.errors import PopupBlockedError
from studydesk.models import User


class TestIdentitySession:
    def test_interactive_sign_in_notifies_listeners(self, user):
        session = IdentitySession(StaticIdentityProvider(user))
        seen = []
        session.on_change(seen.append)
        assert session.sign_in() == user
        assert session.current_user == user
        # Signing in again as the same user is not a change
        session.sign_in()
        assert seen == [user]

    def test_blocked_popup_falls_back_to_redirect(self, user):
        provider = StaticIdentityProvider(user, popup_blocked=True)
        session = IdentitySession(provider)
        seen = []
        session.on_change(seen.append)

        assert session.sign_in() is None
        assert provider.redirect_started is True
        assert session.current_user is None
        assert seen == []

        # Next load picks up the redirect result
        assert session.restore() == user
        assert seen == [user]
        assert session.restore() == user
        assert seen == [user]

    def test_restore_without_redirect_keeps_signed_out(self, user):
        session = IdentitySession(StaticIdentityProvider(user))
        assert session.restore() is None

    def test_sign_out(self, user):
        provider = StaticIdentityProvider(user)
        session = IdentitySession(provider)
        seen = []
        remove = session.on_change(seen.append)
        session.sign_in()
        session.sign_out()
        assert provider.signed_out is True
        assert seen == [user, None]

        remove()
        session.sign_in()
        assert seen == [user, None]

    def test_switching_users_notifies(self, user):
        provider = StaticIdentityProvider(user)
        session = IdentitySession(provider)
        seen = []
        session.on_change(seen.append)
        session.sign_in()
        other = User(uid="student-2")
        provider.user = other
        session.sign_in()
        assert seen == [user, other]


class TestFirebaseIdentityProvider:
    def _provider(self, tmp_path, token_source=None):
        verified = []

        def verifier(token):
            verified.append(token)
            return User(uid=f"uid-for-{token}")

        def blocked():
            raise PopupBlockedError("no sign-in helper")

        provider = FirebaseIdentityProvider(
            token_source=token_source or blocked,
            sign_in_url="https://studydesk.example/sign-in",
            redirect_token_path=str(tmp_path / "id_token"),
            verifier=verifier,
        )
        return provider, verified

    def test_interactive_token_is_verified(self, tmp_path):
        provider, verified = self._provider(tmp_path, token_source=lambda: "abc")
        assert IdentitySession(provider).sign_in() == User(uid="uid-for-abc")
        assert verified == ["abc"]

    def test_redirect_flow_reads_and_removes_token(self, tmp_path, monkeypatch):
        opened = []
        monkeypatch.setattr("studydesk.client.identity.webbrowser.open", opened.append)
        provider, verified = self._provider(tmp_path)
        session = IdentitySession(provider)

        assert session.sign_in() is None
        assert opened == ["https://studydesk.example/sign-in"]
        assert session.restore() is None

        (tmp_path / "id_token").write_text("xyz\n", encoding="utf-8")
        assert session.restore() == User(uid="uid-for-xyz")
        assert verified == ["xyz"]
        assert not (tmp_path / "id_token").exists()
