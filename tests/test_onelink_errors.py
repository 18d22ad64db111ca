import pytest

from services.onelink.errors import LinkErrorKind, LinkResult, LinkResultError


@pytest.mark.parametrize(
    "kind, status",
    [
        (LinkErrorKind.INVALID_TOKEN, 400),
        (LinkErrorKind.TOKEN_EXPIRED, 410),
        (LinkErrorKind.LINK_ALREADY_USED, 409),
        (LinkErrorKind.CONCURRENT_SUBMISSION, 409),
        (LinkErrorKind.INVALID_PREFILL_KEY, 400),
        (LinkErrorKind.EXPIRY_OUT_OF_RANGE, 400),
        (LinkErrorKind.ENCODING_ERROR, 500),
    ],
)
def test_error_kind_http_status(kind, status):
    assert kind.http_status == status
    assert kind.code == f"onelink.{kind.value}"


def test_only_concurrent_submission_is_retryable():
    retryable = {kind for kind in LinkErrorKind if kind.retryable}
    assert retryable == {LinkErrorKind.CONCURRENT_SUBMISSION}


def test_success_result_unwraps():
    result = LinkResult.success("value")
    assert result.ok
    assert result.kind is None
    assert result.unwrap() == "value"


def test_failure_result_carries_detail():
    result = LinkResult.failure(LinkErrorKind.INVALID_PREFILL_KEY, "bad keys", keys=["zip"])

    assert not result.ok
    assert result.kind is LinkErrorKind.INVALID_PREFILL_KEY
    assert result.error.to_detail() == {
        "code": "onelink.invalid_prefill_key",
        "message": "bad keys",
        "retryable": False,
        "details": {"keys": ["zip"]},
    }
    with pytest.raises(LinkResultError) as excinfo:
        result.unwrap()
    assert excinfo.value.error.kind is LinkErrorKind.INVALID_PREFILL_KEY
