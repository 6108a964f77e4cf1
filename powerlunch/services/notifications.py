import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import google.auth.exceptions
import google.auth.transport.requests
import httpx
from google.oauth2 import service_account

from powerlunch.models import LunchGroup, Registration
from powerlunch.services.errors import GroupNotFound, PushUnavailable
from powerlunch.services.registrations import RegistrationStore

logger = logging.getLogger(__name__)

FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


@dataclass
class MulticastResult:
    success_count: int = 0
    failure_count: int = 0
    failed_tokens: list[str] = field(default_factory=list)


@dataclass
class GroupNotificationResult:
    group_id: str
    member_count: int
    notifications_sent: int = 0
    failed_tokens: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class NotificationSummary:
    total_notifications: int = 0
    success_count: int = 0
    failure_count: int = 0
    group_results: list[GroupNotificationResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sent": self.success_count,
            "failed": self.failure_count,
            "total": self.total_notifications,
        }


@dataclass
class ReminderResult:
    success: bool
    notifications_sent: int = 0
    error: str | None = None
    group_found: bool = True


class PushSender(Protocol):
    def send_multicast(
        self, tokens: list[str], title: str, body: str, data: dict[str, str] | None = None
    ) -> MulticastResult:
        ...


class FcmPushSender:
    """Sends one FCM HTTP v1 message per device token and tallies the outcomes.

    Production auth comes from a service account: ``google-auth`` mints an
    OAuth2 access token and refreshes it whenever it is expired or FCM answers
    401. A static ``access_token`` is still accepted for emulators and local runs.
    """

    def __init__(
        self,
        project_id: str,
        access_token: str = "",
        base_url: str = "https://fcm.googleapis.com",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        credentials: Any = None,
        credentials_file: str = "",
        auth_request: Any = None,
    ):
        self.project_id = project_id
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.credentials_file = credentials_file
        self._auth_request = auth_request
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1/projects/{self.project_id}/messages:send"

    def _load_credentials(self):
        if self.credentials is None and self.credentials_file:
            try:
                self.credentials = service_account.Credentials.from_service_account_file(
                    self.credentials_file, scopes=[FCM_SCOPE]
                )
            except (OSError, ValueError, google.auth.exceptions.GoogleAuthError) as exc:
                raise PushUnavailable(f"Could not load FCM service account from {self.credentials_file}: {exc}") from exc
            if not self.project_id:
                self.project_id = getattr(self.credentials, "project_id", None) or ""
        return self.credentials

    def _bearer_token(self, force_refresh: bool = False) -> str:
        if self.credentials is None:
            return self.access_token
        if force_refresh or not self.credentials.valid:
            if self._auth_request is None:
                self._auth_request = google.auth.transport.requests.Request()
            try:
                self.credentials.refresh(self._auth_request)
            except google.auth.exceptions.GoogleAuthError as exc:
                raise PushUnavailable(f"Could not refresh FCM access token: {exc}") from exc
        return self.credentials.token

    def _post(self, message: dict, force_refresh: bool = False) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._bearer_token(force_refresh)}"}
        return self._client.post(self.endpoint, json=message, headers=headers)

    def _message(self, token: str, title: str, body: str, data: dict[str, str] | None) -> dict:
        message = {
            "token": token,
            "notification": {"title": title, "body": body},
            "android": {"priority": "high", "notification": {"sound": "default"}},
            "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
            "webpush": {"fcm_options": {"link": "/"}},
        }
        if data:
            message["data"] = data
        return {"message": message}

    def send_multicast(
        self, tokens: list[str], title: str, body: str, data: dict[str, str] | None = None
    ) -> MulticastResult:
        credentials = self._load_credentials()
        if not self.project_id or (credentials is None and not self.access_token):
            raise PushUnavailable(
                "Push delivery is not configured (FCM_PROJECT_ID / FCM_SERVICE_ACCOUNT_FILE / FCM_ACCESS_TOKEN)"
            )
        result = MulticastResult()
        if not tokens:
            return result

        refreshed = False
        for idx, token in enumerate(tokens):
            message = self._message(token, title, body, data)
            try:
                resp = self._post(message)
                if resp.status_code == 401 and credentials is not None and not refreshed:
                    logger.info("FCM rejected the access token; refreshing credentials and retrying")
                    refreshed = True
                    resp = self._post(message, force_refresh=True)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("FCM send failed for token #%d: %s", idx, exc)
                result.failure_count += 1
                result.failed_tokens.append(token)
                continue
            result.success_count += 1
        return result


def build_notification_payload(group: LunchGroup, members: list[Registration]) -> dict:
    return {
        "groupId": group.id,
        "lunchDate": group.lunch_date,
        "timeSlot": group.time_slot,
        "venue": group.venue,
        "memberNames": [m.user_name for m in members],
        "commonTopics": list(group.common_topics or []),
        "suggestedIcebreakers": list(group.suggested_icebreakers or []),
    }


class NotificationFanout:
    def __init__(self, store: RegistrationStore, sender: PushSender):
        self.store = store
        self.sender = sender

    def _notify_group(
        self, conference_id: str, group: LunchGroup
    ) -> tuple[GroupNotificationResult, MulticastResult]:
        members = self.store.fetch_by_ids(conference_id, list(group.member_ids or []))
        tokens = [m.push_token for m in members if m.push_token]
        if not tokens:
            logger.info("No push tokens for group %s", group.id)
            return GroupNotificationResult(group_id=group.id, member_count=group.member_count), MulticastResult()

        others = max(group.member_count - 1, 0)
        result = self.sender.send_multicast(
            tokens,
            "🍽️ Power Lunch Match!",
            f"You've been matched with {others} other attendees for {group.lunch_date}. Tap to see your group!",
            {
                "type": "power_lunch_match",
                "groupId": group.id,
                "conferenceId": conference_id,
                "lunchDate": group.lunch_date,
                "timeSlot": group.time_slot,
                "notificationData": json.dumps(build_notification_payload(group, members)),
            },
        )
        logger.info(
            "Notifications sent for group %s: %d success, %d failed",
            group.id,
            result.success_count,
            result.failure_count,
        )
        return GroupNotificationResult(
            group_id=group.id,
            member_count=group.member_count,
            notifications_sent=result.success_count,
            failed_tokens=list(result.failed_tokens),
        ), result

    def notify(self, conference_id: str, groups: list[LunchGroup]) -> NotificationSummary:
        summary = NotificationSummary()
        for group in groups:
            try:
                group_result, sent = self._notify_group(conference_id, group)
            except Exception as exc:
                logger.exception("Failed to notify group %s of %s", group.id, conference_id)
                summary.group_results.append(
                    GroupNotificationResult(group_id=group.id, member_count=group.member_count, error=str(exc))
                )
                continue

            summary.success_count += sent.success_count
            summary.failure_count += sent.failure_count
            summary.group_results.append(group_result)

        summary.total_notifications = summary.success_count + summary.failure_count
        return summary

    def send_reminder(self, conference_id: str, group_id: str, minutes_before: int = 30) -> ReminderResult:
        try:
            found = self.store.get_group_with_members(conference_id, group_id)
            if found is None:
                raise GroupNotFound(f"Group {group_id} not found")
            group, members = found

            tokens = [m.push_token for m in members if m.push_token]
            if not tokens:
                return ReminderResult(success=True)

            result = self.sender.send_multicast(
                tokens,
                "⏰ Power Lunch Starting Soon!",
                f"Your Power Lunch at {group.venue or 'the designated venue'} starts in {minutes_before} minutes. "
                f"Time slot: {group.time_slot}",
                {
                    "type": "power_lunch_reminder",
                    "groupId": group.id,
                    "conferenceId": conference_id,
                    "timeSlot": group.time_slot,
                },
            )
        except GroupNotFound as exc:
            logger.warning("Reminder requested for unknown group %s of %s", group_id, conference_id)
            return ReminderResult(success=False, error=str(exc), group_found=False)
        except Exception as exc:
            logger.exception("Failed to send reminder for group %s of %s", group_id, conference_id)
            return ReminderResult(success=False, error=str(exc))
        return ReminderResult(success=True, notifications_sent=result.success_count)
