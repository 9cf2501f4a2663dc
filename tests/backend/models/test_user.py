import pytest

from backend.models.user import User


def test_profile_accepts_known_fields() -> None:
    user = User(name='Alice', email='alice@example.com', role='patient', profile={'phone': '+15550100', 'languages': ['en']})

    assert user.profile == {'phone': '+15550100', 'languages': ['en']}


def test_profile_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError, match='Unsupported profile fields: favorite_color'):
        User(name='Alice', email='alice@example.com', role='patient', profile={'favorite_color': 'blue'})


def test_role_must_be_known() -> None:
    with pytest.raises(ValueError, match='Unknown role'):
        User(name='Alice', email='alice@example.com', role='nurse')


def test_profile_defaults_to_empty_map(db_session) -> None:
    user = User(name='Alice', email='alice@example.com', role='patient')
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)

    assert user.profile == {}
