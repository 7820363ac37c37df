"""PKCE verifier/challenge helpers."""

import pytest

from authcore.services.pkce import (
    MAX_VERIFIER_LENGTH,
    MIN_VERIFIER_LENGTH,
    VERIFIER_ALPHABET,
    code_challenge,
    generate_code_verifier,
    verify_code_challenge,
)


def test_generate_code_verifier_alphabet_and_length():
    verifier = generate_code_verifier()
    assert len(verifier) == 64
    assert set(verifier) <= set(VERIFIER_ALPHABET)
    assert len(generate_code_verifier(MIN_VERIFIER_LENGTH)) == MIN_VERIFIER_LENGTH
    assert len(generate_code_verifier(MAX_VERIFIER_LENGTH)) == MAX_VERIFIER_LENGTH


@pytest.mark.parametrize("length", [MIN_VERIFIER_LENGTH - 1, MAX_VERIFIER_LENGTH + 1])
def test_generate_code_verifier_rejects_bad_length(length):
    with pytest.raises(ValueError):
        generate_code_verifier(length)


def test_s256_challenge_matches_rfc7636_example():
    # RFC 7636 Appendix B
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_verify_code_challenge():
    verifier = generate_code_verifier()
    assert verify_code_challenge(verifier, code_challenge(verifier))
    assert not verify_code_challenge(generate_code_verifier(), code_challenge(verifier))
    assert verify_code_challenge(verifier, verifier, method="plain")


def test_unknown_method_rejected():
    with pytest.raises(ValueError):
        code_challenge("x" * 43, method="S512")
