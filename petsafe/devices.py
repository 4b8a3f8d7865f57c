import logging
from typing import Any, TypedDict

from .api import PetSafeApi, decode_json

_LOGGER = logging.getLogger(__name__)

FEEDERS_PATH = "smart-feed/feeders"
LITTERBOXES_PATH = "scoopfree/product/product"

# raw battery reading range of a SmartFeed running on batteries
BATTERY_MIN_VOLTAGE = 22755
BATTERY_MAX_VOLTAGE = 29100


class FeederSettings(TypedDict, total=False):
    paused: bool
    slow_feed: bool
    child_lock: bool
    friendly_name: str
    pet_type: str


class FeederData(TypedDict, total=False):
    thing_name: str
    id: str
    battery_voltage: str
    is_batteries_installed: bool
    settings: FeederSettings
    food_sensor_current: str
    is_food_low: str
    firmware_version: str
    product_name: str


class FeederMessagePayload(TypedDict, total=False):
    isFoodLow: int
    amount: int
    source: str
    h: int
    m: int
    sensorReading1Infrared: int
    sensorReading2Infrared: int
    time: int


class FeederMessage(TypedDict, total=False):
    message_type: str
    created_at: str
    payload: FeederMessagePayload


class FeedingSchedule(TypedDict, total=False):
    id: str
    time: str
    amount: int


class LitterboxData(TypedDict, total=False):
    thingName: str
    friendlyName: str
    productName: str
    shadow: dict[str, Any]


async def get_feeders(api: PetSafeApi) -> list["SmartFeed"]:
    """Return all SmartFeed feeders registered to the account."""
    data = decode_json(await api.get(FEEDERS_PATH), expected_type=list)
    return [SmartFeed(api, raw) for raw in data]


async def get_litterboxes(api: PetSafeApi) -> list["ScoopFree"]:
    """Return all ScoopFree litterboxes registered to the account."""
    data = decode_json(await api.get(LITTERBOXES_PATH), expected_type=dict)
    return [ScoopFree(api, raw) for raw in data.get("data", [])]


class SmartFeed:
    """A SmartFeed automatic feeder.

    Commands go straight to the platform; the cached ``data`` is refreshed
    afterwards unless ``update_data=False`` is passed.
    """

    def __init__(self, api: PetSafeApi, data: FeederData) -> None:
        self._api = api
        self.data = data

    def __repr__(self) -> str:
        return f"<SmartFeed {self.api_name!r} {self.friendly_name!r}>"

    @property
    def api_name(self) -> str:
        return self.data.get("thing_name", "")

    @property
    def api_path(self) -> str:
        return f"{FEEDERS_PATH}/{self.api_name}/"

    @property
    def id(self) -> str:
        return self.data.get("id", "")

    @property
    def battery_voltage(self) -> float:
        try:
            return round(int(self.data["battery_voltage"]) / 32767 * 7.2, 3)
        except (KeyError, TypeError, ValueError):
            return -1

    @property
    def battery_level(self) -> int:
        if not self.data.get("is_batteries_installed"):
            return 0
        try:
            raw = int(self.data["battery_voltage"])
        except (KeyError, TypeError, ValueError):
            return 0
        level = (
            100
            * (raw - BATTERY_MIN_VOLTAGE)
            / (BATTERY_MAX_VOLTAGE - BATTERY_MIN_VOLTAGE)
        )
        return round(max(level, 0))

    @property
    def settings(self) -> FeederSettings:
        return self.data.get("settings", FeederSettings())

    @property
    def is_paused(self) -> bool:
        return bool(self.settings.get("paused", False))

    @property
    def is_slow_feed(self) -> bool:
        return bool(self.settings.get("slow_feed", False))

    @property
    def is_locked(self) -> bool:
        return bool(self.settings.get("child_lock", False))

    @property
    def friendly_name(self) -> str:
        return self.settings.get("friendly_name", "")

    @property
    def pet_type(self) -> str:
        return self.settings.get("pet_type", "")

    @property
    def food_sensor_current(self) -> str:
        return self.data.get("food_sensor_current", "")

    @property
    def food_low_status(self) -> int:
        try:
            return int(self.data.get("is_food_low", 0))
        except (TypeError, ValueError):
            return 0

    @property
    def firmware(self) -> str:
        return self.data.get("firmware_version", "")

    @property
    def product_name(self) -> str:
        return self.data.get("product_name", "")

    async def update_data(self) -> None:
        self.data = decode_json(await self._api.get(self.api_path), expected_type=dict)

    async def put_setting(
        self, setting: str, value: Any, *, force_update: bool = False
    ) -> None:
        await self._api.put(f"{self.api_path}settings/{setting}", {"value": value})
        if force_update:
            await self.update_data()
        else:
            self.data.setdefault("settings", FeederSettings())[setting] = value  # type: ignore[literal-required]

    async def get_messages_since(self, days: int = 7) -> list[FeederMessage]:
        resp = await self._api.get(f"{self.api_path}messages", params={"days": days})
        return decode_json(resp, expected_type=list)

    async def get_last_feeding(self) -> FeederMessage | None:
        for message in await self.get_messages_since():
            if message.get("message_type") == "FEED_DONE":
                return message
        return None

    async def feed(
        self,
        amount: int = 1,
        slow_feed: bool | None = None,
        *,
        update_data: bool = True,
    ) -> None:
        if slow_feed is None:
            slow_feed = self.is_slow_feed
        _LOGGER.debug("feeding %d portion(s) from %s", amount, self.api_name)
        await self._api.post(
            f"{self.api_path}meals", {"amount": amount, "slow_feed": slow_feed}
        )
        if update_data:
            await self.update_data()

    async def repeat_feed(self) -> None:
        last_feeding = await self.get_last_feeding()
        if last_feeding:
            await self.feed(last_feeding.get("payload", {}).get("amount", 1))

    async def prime(self) -> None:
        await self.feed(5, False)

    async def get_schedules(self) -> list[FeedingSchedule]:
        resp = await self._api.get(f"{self.api_path}schedules")
        return decode_json(resp, expected_type=list)

    async def schedule_feed(
        self, time: str = "00:00", amount: int = 1, *, update_data: bool = True
    ) -> FeedingSchedule:
        resp = await self._api.post(
            f"{self.api_path}schedules", {"time": time, "amount": amount}
        )
        if update_data:
            await self.update_data()
        return decode_json(resp)

    async def modify_schedule(
        self,
        schedule_id: str,
        time: str = "00:00",
        amount: int = 1,
        *,
        update_data: bool = True,
    ) -> None:
        await self._api.put(
            f"{self.api_path}schedules/{schedule_id}", {"time": time, "amount": amount}
        )
        if update_data:
            await self.update_data()

    async def delete_schedule(self, schedule_id: str, *, update_data: bool = True) -> None:
        await self._api.delete(f"{self.api_path}schedules/{schedule_id}")
        if update_data:
            await self.update_data()

    async def delete_all_schedules(self, *, update_data: bool = True) -> None:
        await self._api.delete(f"{self.api_path}schedules")
        if update_data:
            await self.update_data()

    async def pause_schedules(self, value: bool, *, update_data: bool = True) -> None:
        await self._api.put(f"{self.api_path}settings/paused", {"value": value})
        if update_data:
            await self.update_data()

    async def pause(self, value: bool = True) -> None:
        await self.put_setting("paused", value)

    async def lock(self, value: bool = True) -> None:
        await self.put_setting("child_lock", value)

    async def slow_feed(self, value: bool = True) -> None:
        await self.put_setting("slow_feed", value)


class ScoopFree:
    """A ScoopFree self-cleaning litterbox."""

    def __init__(self, api: PetSafeApi, data: LitterboxData) -> None:
        self._api = api
        self.data = data

    def __repr__(self) -> str:
        return f"<ScoopFree {self.api_name!r} {self.friendly_name!r}>"

    @property
    def api_name(self) -> str:
        return self.data.get("thingName", "")

    @property
    def api_path(self) -> str:
        return f"{LITTERBOXES_PATH}/{self.api_name}/"

    @property
    def friendly_name(self) -> str:
        return self.data.get("friendlyName", "")

    @property
    def firmware(self) -> str:
        try:
            return self.data["shadow"]["state"]["reported"]["firmware"]
        except (KeyError, TypeError):
            return ""

    @property
    def product_name(self) -> str:
        return self.data.get("productName", "")

    async def update_data(self) -> None:
        data = decode_json(await self._api.get(self.api_path), expected_type=dict)
        # single product responses are wrapped like the listing
        self.data = data.get("data", data)

    async def rake(self, *, update_data: bool = True) -> LitterboxData | None:
        await self._api.post(f"{self.api_path}rake-now", {})
        if update_data:
            await self.update_data()
            return self.data
        return None

    async def reset(
        self, rake_count: int = 0, *, update_data: bool = True
    ) -> LitterboxData | None:
        await self._api.patch(f"{self.api_path}shadow", {"rakeCount": rake_count})
        if update_data:
            await self.update_data()
            return self.data
        return None

    async def modify_timer(
        self, rake_delay_time: int = 15, *, update_data: bool = True
    ) -> LitterboxData | None:
        await self._api.patch(
            f"{self.api_path}shadow", {"rakeDelayTime": rake_delay_time}
        )
        if update_data:
            await self.update_data()
            return self.data
        return None

    async def get_activity(self) -> Any:
        return decode_json(await self._api.get(f"{self.api_path}activity"))

    async def patch_setting(
        self, setting: str, value: Any, *, force_update: bool = False
    ) -> None:
        await self._api.patch(f"{self.api_path}settings", {setting: value})
        if force_update:
            await self.update_data()
        else:
            self.data[setting] = value  # type: ignore[literal-required]
