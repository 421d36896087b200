"""
Tests for security data models and errors.
"""

from gatekeeper import ErrorField, ErrorKind, PathMatcher, Role, SecurityError, User


def make_user(*roles):
    return User(user_id="u1", username="alice", roles=list(roles))


class TestUser:
    """Test role based checks on users."""

    def test_ranked_roles_keep_order_for_equal_weight(self):
        first = Role("r1", "first", weight=5)
        second = Role("r2", "second", weight=5)
        top = Role("r3", "top", weight=9)

        user = make_user(first, second, top)

        assert [r.name for r in user.ranked_roles()] == ["top", "first", "second"]
        assert user.get_role_weight() == 9
        assert make_user().get_role_weight() == 0

    def test_permission_from_any_role(self):
        user = make_user(Role("r1", "readers", permissions={"reports.view"}), Role("r2", "empty"))

        assert user.is_permission_granted("reports.view")
        assert not user.is_permission_granted("content.edit")

    def test_role_without_paths_has_no_opinion(self):
        user = make_user(Role("r1", "empty", weight=50), Role("r2", "content", paths=["/content**"]))

        assert user.is_path_allowed("/content/1", "GET", PathMatcher())
        assert not user.is_path_allowed("/admin", "GET", PathMatcher())

    def test_higher_role_denial_wins(self):
        """Test that a lower role cannot grant what a higher role refuses."""
        admins = Role("r1", "admins", weight=10, paths=["/admin**", "!/admin/secret"])
        helpers = Role("r2", "helpers", weight=1, paths=["/admin/secret"])

        user = make_user(helpers, admins)

        assert not user.is_path_allowed("/admin/secret", "GET", PathMatcher())
        assert user.is_path_allowed("/admin/users", "GET", PathMatcher())

    def test_lower_role_decides_when_higher_has_no_match(self):
        admins = Role("r1", "admins", weight=10, paths=["/admin**"])
        helpers = Role("r2", "helpers", weight=1, paths=["/reports**"])

        assert make_user(admins, helpers).is_path_allowed("/reports/1", "GET", PathMatcher())

    def test_equal_weight_first_role_wins(self):
        closed = Role("r1", "closed", weight=5, paths=["!/shared**"])
        opened = Role("r2", "opened", weight=5, paths=["/shared**"])

        assert not make_user(closed, opened).is_path_allowed("/shared/doc", "GET", PathMatcher())
        assert make_user(opened, closed).is_path_allowed("/shared/doc", "GET", PathMatcher())

    def test_preferences(self):
        user = make_user()

        user.set_preference("theme", "dark")
        assert user.get_preference("theme") == "dark"

        user.set_preference("theme", None)
        assert user.get_preference("theme", "light") == "light"
        assert user.preferences == {}

    def test_str(self):
        assert str(make_user()) == "alice"


class TestSecurityError:
    """Test error kinds and fields."""

    def test_authentication_errors(self):
        assert SecurityError.bad_credentials().field is ErrorField.PASSWORD
        assert SecurityError.unknown_user().field is ErrorField.USERNAME
        assert SecurityError.inactive_user().is_authentication_error
        assert SecurityError.email_unconfirmed().is_authentication_error

    def test_other_errors(self):
        error = SecurityError.unauthorized("Could not switch user")

        assert error.kind is ErrorKind.UNAUTHORIZED
        assert error.field is ErrorField.NONE
        assert not error.is_authentication_error
        assert str(error) == "Could not switch user"

    def test_malformed_url_message(self):
        assert "ftp://" in str(SecurityError.malformed_url("ftp://"))
