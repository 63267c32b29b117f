"""Shared fixtures for relay tests."""

import json
from typing import Any, Dict, List

import httpx
import pytest


class FakeHooksApi:
    """Answers GitHub's repository hook endpoints from memory.

    Like GitHub, a second hook with an already registered config URL is
    refused with 422, and listed hooks show their secret masked.
    """

    def __init__(self, first_hook_id: int = 1001):
        self.hooks: Dict[int, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self._next_id = first_hook_id

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/hooks") and request.method == "GET":
            return httpx.Response(200, json=[self._masked(hook) for hook in self.hooks.values()])

        if path.endswith("/hooks") and request.method == "POST":
            body = json.loads(request.content)
            url = body["config"]["url"]
            if any(hook["config"]["url"] == url for hook in self.hooks.values()):
                return httpx.Response(
                    422,
                    json={
                        "message": "Validation Failed",
                        "errors": [
                            {
                                "resource": "Hook",
                                "code": "custom",
                                "message": "Hook already exists on this repository",
                            }
                        ],
                    },
                )
            hook = {
                "id": self._next_id,
                "active": body.get("active", True),
                "events": body.get("events", []),
                "config": body["config"],
            }
            self.hooks[hook["id"]] = hook
            self._next_id += 1
            return httpx.Response(201, json=self._masked(hook))

        if "/hooks/" in path and request.method == "PATCH":
            hook = self.hooks.get(int(path.rsplit("/", 1)[1]))
            if hook is None:
                return httpx.Response(404, json={"message": "Not Found"})
            body = json.loads(request.content)
            hook.update({key: value for key, value in body.items() if key != "config"})
            hook["config"] = body.get("config", hook["config"])
            return httpx.Response(200, json=self._masked(hook))

        return httpx.Response(404, json={"message": "Not Found"})

    @staticmethod
    def _masked(hook: Dict[str, Any]) -> Dict[str, Any]:
        config = dict(hook["config"])
        if "secret" in config:
            config["secret"] = "********"
        return {**hook, "config": config}

    def secret_of(self, hook_id: int) -> Any:
        return self.hooks[hook_id]["config"].get("secret")


@pytest.fixture
def hooks_api() -> FakeHooksApi:
    return FakeHooksApi()
