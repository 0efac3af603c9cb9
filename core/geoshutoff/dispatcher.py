"""
Command Dispatcher

Turns an intent into a signed setAll command, sends it, and records the
commanded state on success.

Infrared remotes cannot tell us whether the air conditioner is really off:
the status endpoint mostly answers "no history". The only way to be sure is
to send the command again, so an off-command is never skipped here because
of what the remote status says.
"""

import asyncio
import logging
from typing import Optional, Union

from .exceptions import DispatchFailure, VendorConnectionError
from .models import (
    ControlCommand,
    DeviceState,
    DispatchResult,
    Intent,
    PowerState,
    StateSource,
)
from .seasons import SeasonalProfileResolver
from .state_store import DeviceStateStore
from .switchbot_client import (
    VENDOR_NO_HISTORY,
    VENDOR_SUCCESS,
    SwitchBotClient,
    describe_vendor_status,
    mask,
)

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Sends seasonal setAll commands to one infrared air conditioner."""

    def __init__(
        self,
        transport: SwitchBotClient,
        store: DeviceStateStore,
        resolver: SeasonalProfileResolver,
        device_id: str,
        read_back: bool = False,
        read_back_delay: float = 3.0,
    ):
        """Initialize dispatcher.

        Args:
            transport: Signed client exposing send_command/read_status
            store: Device state store updated after successful commands
            resolver: Seasonal profile resolver
            device_id: SwitchBot id of the air conditioner remote
            read_back: Poll remote status after each command, for logs only
            read_back_delay: Seconds to wait before the read-back poll
        """
        self.transport = transport
        self.store = store
        self.resolver = resolver
        self.device_id = device_id
        self.read_back = read_back
        self.read_back_delay = read_back_delay
        self._read_back_tasks: set[asyncio.Task] = set()

    async def send(
        self,
        intent: Union[Intent, str],
        source: StateSource = StateSource.LOCAL_CONTROL,
        month: Optional[int] = None,
    ) -> DispatchResult:
        """Send the seasonal command for ``intent``.

        Args:
            intent: power_on or power_off
            source: Provenance recorded in the state store on success
            month: Month override for the seasonal profile

        Returns:
            DispatchResult with the vendor response and the new state

        Raises:
            DispatchFailure: If the command could not be delivered; the
                state store is left untouched
        """
        intent = Intent(intent)
        profile = self.resolver.resolve(intent, month)
        command = ControlCommand(intent=intent, encoded_parameter=profile.encode())

        logger.info(
            f"Dispatching {intent.value} ({profile.season.value} profile, "
            f"parameter={command.encoded_parameter}) to {mask(self.device_id)}"
        )

        try:
            response = await asyncio.to_thread(
                self.transport.send_command,
                self.device_id,
                command.encoded_parameter,
                command.command,
                command.command_type,
            )
        except VendorConnectionError as e:
            logger.error(f"Command {intent.value} not delivered: {e}")
            raise DispatchFailure(
                f"Air conditioner command failed: {e}",
                http_status=None,
                vendor_message=str(e),
                timed_out=e.timed_out,
            ) from e

        if not response.ok:
            logger.error(
                f"Command {intent.value} rejected: HTTP {response.status_code} - {response.vendor_message}"
            )
            raise DispatchFailure(
                f"Air conditioner command failed: HTTP {response.status_code}",
                http_status=response.status_code,
                vendor_message=response.vendor_message,
            )

        vendor_status = response.vendor_status
        if vendor_status is not None and vendor_status != VENDOR_SUCCESS:
            # Advisory only: infrared relays report odd codes for commands that did fire
            logger.warning(
                f"SwitchBot statusCode {vendor_status} ({response.vendor_message}) for "
                f"{intent.value}; possible causes: {describe_vendor_status(vendor_status)}"
            )

        state = self.store.write(
            source,
            power=intent.power,
            temperature=profile.temperature,
            mode=profile.mode,
        )

        if self.read_back:
            self._schedule_read_back()

        return DispatchResult(
            success=True,
            vendor_response=response.body,
            command=command,
            state=state,
        )

    async def read_remote_state(self) -> DeviceState:
        """Best-effort interpretation of the remote status endpoint.

        Never raises for network or vendor trouble; anything other than a
        definite on/off comes back as unknown.
        """
        try:
            response = await asyncio.to_thread(self.transport.read_status, self.device_id)
        except VendorConnectionError as e:
            logger.warning(f"Remote status read failed: {e}")
            return DeviceState(source=StateSource.REMOTE_API)

        vendor_status = response.vendor_status
        if response.ok and vendor_status == VENDOR_SUCCESS and isinstance(response.body.get("body"), dict):
            power = response.body["body"].get("power")
            if power in (PowerState.ON.value, PowerState.OFF.value):
                return DeviceState(power=PowerState(power), source=StateSource.REMOTE_API)

        if vendor_status == VENDOR_NO_HISTORY:
            logger.debug("Remote status: no command history (typical for infrared remotes)")
        else:
            logger.debug(f"Remote status inconclusive: HTTP {response.status_code}, body={response.body}")
        return DeviceState(source=StateSource.REMOTE_API)

    def _schedule_read_back(self) -> None:
        task = asyncio.get_running_loop().create_task(self._read_back())
        self._read_back_tasks.add(task)
        task.add_done_callback(self._read_back_tasks.discard)

    async def _read_back(self) -> None:
        await asyncio.sleep(self.read_back_delay)
        remote = await self.read_remote_state()
        local = self.store.read()
        logger.info(
            f"Post-command read-back: remote={remote.power.value}, local={local.power.value}"
        )
