import pytest

from sharing import SHARE_DEFAULTS, decode_share_code, encode_share_code


def test_encode_formats_integral_values_without_decimals():
    assert encode_share_code(42, 300, 4.0, 4.0, 0.95) == "42,300,4,4,0.95"
    assert encode_share_code(7, 1000, 2.5, 5.0, 0.9) == "7,1000,2.5,5,0.9"


def test_decode_full_code():
    assert decode_share_code("42,300,4,4,0.95") == {
        'seed': 42, 'particle_count': 300, 'flow_intensity': 4.0, 'scale': 4.0, 'decay': 0.95,
    }


def test_decode_accepts_fragment_prefix_and_whitespace():
    shared = decode_share_code("  #9,50,1.5,3,0.8 ")
    assert shared['seed'] == 9
    assert shared['particle_count'] == 50
    assert shared['decay'] == 0.8


def test_seed_only_legacy_form():
    assert decode_share_code("123456") == {'seed': 123456}
    assert decode_share_code("#77") == {'seed': 77}


def test_unparsable_fields_fall_back_to_defaults():
    shared = decode_share_code("5,lots,fast,inf,nan")
    assert shared == dict(SHARE_DEFAULTS, seed=5)


def test_leading_integers_are_taken():
    shared = decode_share_code("12abc,40.7,1,1,0.5")
    assert shared['seed'] == 12
    assert shared['particle_count'] == 40


@pytest.mark.parametrize("code", ["", None, "abc", "x,1,2,3,4", "1,2,3", "#"])
def test_rejected_codes(code):
    assert decode_share_code(code) is None


def test_extra_fields_are_ignored():
    shared = decode_share_code("3,10,2,2,0.5,extra")
    assert shared['decay'] == 0.5
    assert len(shared) == 5
