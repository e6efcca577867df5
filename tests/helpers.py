"""Test helpers."""

from unittest.mock import MagicMock


def make_response(status_code=200, json_data=None, text=""):
    """Build a stand-in for requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response
