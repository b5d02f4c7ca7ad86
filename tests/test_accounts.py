import pytest

from errors import EmailTaken, InvalidInput, NotFound
from user import Role


def test_signup_defaults_to_student(accounts):
    user = accounts.signup("  Priya Sharma ", "Priya@Student.Test")

    assert user.role is Role.STUDENT
    assert user.name == "Priya Sharma"
    assert user.email == "priya@student.test"
    assert accounts.find_user(user.id) == user


def test_signup_admin_role(accounts):
    assert accounts.signup("Asha", "asha@library.test", "admin").is_admin


def test_signup_duplicate_email_case_insensitive(accounts, student):
    with pytest.raises(EmailTaken):
        accounts.signup("Another Ravi", "RAVI@student.test")
    assert len(accounts.list_users()) == 1


def test_email_taken_is_invalid_input(accounts, student):
    with pytest.raises(InvalidInput):
        accounts.signup("Another Ravi", student.email)


@pytest.mark.parametrize("name, email", [
    ("", "a@b.test"),
    ("12345", "a@b.test"),
    ("Valid Name", "not-an-email"),
    ("Valid Name", ""),
])
def test_signup_rejects_bad_input(accounts, name, email):
    with pytest.raises(InvalidInput):
        accounts.signup(name, email)


def test_signup_rejects_unknown_role(accounts):
    with pytest.raises(InvalidInput, match="role"):
        accounts.signup("Priya", "priya@student.test", "LIBRARIAN")


def test_login_by_email(accounts, student):
    assert accounts.login(" Ravi@Student.test ").id == student.id


def test_login_unknown_email(accounts):
    with pytest.raises(NotFound):
        accounts.login("ghost@student.test")


def test_login_requires_email(accounts):
    with pytest.raises(InvalidInput):
        accounts.login("  ")


def test_find_user_unknown(accounts):
    with pytest.raises(NotFound):
        accounts.find_user("missing")
