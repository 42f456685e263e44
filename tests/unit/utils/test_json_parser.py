from app.utils.json_parser import parse_json_safely


def test_plain_json():
    assert parse_json_safely('{"document_type": "darf"}') == {"document_type": "darf"}


def test_markdown_fence():
    text = 'Here you go:\n```json\n{"confidence": 0.9}\n```\nThanks'

    assert parse_json_safely(text) == {"confidence": 0.9}


def test_prose_around_object():
    text = 'The result is {"amount": "150,00"} as requested. {"ignored": true}'

    assert parse_json_safely(text) == {"amount": "150,00"}


def test_array_value():
    assert parse_json_safely("[1, 2, 3] trailing") == [1, 2, 3]


def test_unparseable_text():
    assert parse_json_safely("no json here") is None
    assert parse_json_safely("") is None
