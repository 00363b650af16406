import pytest
import requests
from unittest.mock import MagicMock

from infrastructure.configuration.integrations.sms import SmsSettings
from infrastructure.operations import OperationStatus
from integrations.africastalking import client as africastalking


def make_settings(**overrides):
    values = {
        "AFRICASTALKING_USERNAME": "jirani",
        "AFRICASTALKING_API_KEY": "api-key",
        "AFRICASTALKING_SENDER_ID": "JIRANI",
    }
    values.update(overrides)
    return SmsSettings(**values)


def make_response(status_code, body=None, text=""):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    response.headers = {}
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body or {}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(response=response)
    else:
        response.raise_for_status.return_value = None
    return response


RECIPIENTS_BODY = {
    "SMSMessageData": {
        "Message": "Sent to 1/1 Total Cost: KES 0.8000",
        "Recipients": [
            {
                "number": "+254712345678",
                "status": "Success",
                "statusCode": 101,
                "messageId": "ATXid_1",
                "cost": "KES 0.8000",
            }
        ],
    }
}


def test_send_unconfigured_is_unavailable():
    session = MagicMock()
    client = africastalking.AfricasTalkingClient(
        make_settings(AFRICASTALKING_API_KEY=None), session
    )

    result = client.send(["+254712345678"], "hello")

    assert result.status == OperationStatus.UNAVAILABLE
    session.post.assert_not_called()


def test_send_posts_form_with_sender_id():
    session = MagicMock()
    session.post.return_value = make_response(201, RECIPIENTS_BODY)
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    result = client.send(["+254712345678", "+254722000111"], "hello")

    assert result.is_success
    assert result.data == RECIPIENTS_BODY["SMSMessageData"]["Recipients"]
    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == "https://api.africastalking.com/version1/messaging"
    assert kwargs["data"] == {
        "username": "jirani",
        "to": "+254712345678,+254722000111",
        "message": "hello",
        "from": "JIRANI",
    }
    assert kwargs["headers"]["apiKey"] == "api-key"
    assert kwargs["headers"]["Accept"] == "application/json"


def test_send_without_sender_id_omits_from():
    session = MagicMock()
    session.post.return_value = make_response(201, RECIPIENTS_BODY)
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    client.send(["+254712345678"], "hello", use_sender_id=False)

    assert "from" not in session.post.call_args.kwargs["data"]


def test_sandbox_username_uses_sandbox_url():
    client = africastalking.AfricasTalkingClient(
        make_settings(AFRICASTALKING_USERNAME="sandbox"), MagicMock()
    )
    assert client.url == africastalking.SANDBOX_URL


def test_rejected_credentials_are_unavailable():
    session = MagicMock()
    session.post.return_value = make_response(401, text="The supplied authentication is invalid")
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    result = client.send(["+254712345678"], "hello")

    assert result.status == OperationStatus.UNAVAILABLE


@pytest.mark.parametrize(
    "status_code,expected",
    [
        (500, OperationStatus.TRANSIENT_ERROR),
        (429, OperationStatus.TRANSIENT_ERROR),
        (400, OperationStatus.PERMANENT_ERROR),
    ],
)
def test_http_errors_are_classified(status_code, expected):
    session = MagicMock()
    session.post.return_value = make_response(status_code)
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    result = client.send(["+254712345678"], "hello")

    assert result.status == expected


def test_non_json_body_is_transient():
    session = MagicMock()
    session.post.return_value = make_response(
        200, ValueError("no json"), text="<html>gateway</html>"
    )
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    result = client.send(["+254712345678"], "hello")

    assert result.status == OperationStatus.TRANSIENT_ERROR
    assert result.error_code == "BAD_RESPONSE"


def test_response_without_recipients_is_transient():
    session = MagicMock()
    session.post.return_value = make_response(
        201, {"SMSMessageData": {"Message": "InvalidSenderId"}}
    )
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    result = client.send(["+254712345678"], "hello")

    assert result.status == OperationStatus.TRANSIENT_ERROR
    assert result.message == "InvalidSenderId"


def test_timeout_is_transient():
    session = MagicMock()
    session.post.side_effect = requests.Timeout()
    client = africastalking.AfricasTalkingClient(make_settings(), session)

    result = client.send(["+254712345678"], "hello")

    assert result.error_code == "TIMEOUT"
