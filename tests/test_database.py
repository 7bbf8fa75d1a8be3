from signflow.core.database.base import generate_ulid


def test_generated_ids_are_unique_ulid_strings():
    first, second = generate_ulid(), generate_ulid()

    assert isinstance(first, str)
    assert len(first) == 26
    assert first != second
