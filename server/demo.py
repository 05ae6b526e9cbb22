"""Demo host: a handful of fake devices exercising every dialog type"""

import asyncio
import json

from dm.handlers import DeviceManagementHandlers
from dm.models import DeviceAction, DeviceDetails, DeviceInfo, InstanceAction, InstanceDetails
from dm.session import DialogSession
from utils import get_logger


logger = get_logger(__name__)


DEMO_FORM_SCHEMA = {
    "type": "tabs",
    "items": {
        "options1": {
            "type": "panel",
            "label": "Tab1",
            "items": {
                "myPort": {
                    "type": "number",
                    "min": 1,
                    "max": 65565,
                    "label": "Number",
                    "sm": 6,
                    "hidden": "data.myType === 1",
                    "disabled": "data.myType === 2",
                },
                "myType": {
                    "newLine": True,
                    "type": "select",
                    "label": "My Type",
                    "sm": 6,
                    "options": [
                        {"label": "option 0", "value": 0},
                        {"label": "option 1", "value": 1},
                        {"label": "option 2", "value": 2},
                    ],
                },
                "myBool": {"type": "checkbox", "label": "My checkbox"},
            },
        },
        "options2": {
            "type": "panel",
            "label": "Tab2",
            "items": {
                "secondPort": {
                    "type": "number",
                    "min": 1,
                    "max": 65565,
                    "label": "Second Number",
                    "sm": 6,
                },
                "secondBool": {"type": "checkbox", "label": "Second checkbox"},
            },
        },
    },
}

DEMO_DETAILS_SCHEMA = {
    "type": "panel",
    "items": {
        "text1": {"type": "staticText", "text": "This is some description", "sm": 12},
        "button1": {
            "type": "sendTo",
            "label": "Click me to send a message!",
            "sm": 6,
            "command": "send",
            "data": {"hello": "world"},
        },
    },
}


def handle_play(device_id: str, context: DialogSession):
    logger.info("demo_play_pressed", device_id=device_id)
    return {"refresh": False}


async def handle_pause(device_id: str, context: DialogSession):
    logger.info("demo_pause_pressed", device_id=device_id)
    confirmed = await context.show_confirmation("Do you want to refresh the device only?")
    return {"refresh": "device" if confirmed else "instance"}


async def handle_forms(device_id: str, context: DialogSession):
    logger.info("demo_forms_pressed", device_id=device_id)
    data = await context.show_form(DEMO_FORM_SCHEMA, data={"myPort": 8081, "secondPort": 8082})
    if data is None:
        await context.show_message("You cancelled the previous form!")
    else:
        await context.show_message(f"You entered: {json.dumps(data)}")
    return {"refresh": False}


async def handle_discover(context: DialogSession, steps: int = 5, delay: float = 0.5):
    if not await context.show_confirmation("Search the network for new devices?"):
        return {"refresh": False}

    progress = await context.open_progress("Searching for devices", value=0)
    for step in range(1, steps + 1):
        await asyncio.sleep(delay)
        await progress.update(value=step * 100 // steps, label=f"Step {step} of {steps}")
    await progress.close()

    await context.show_message("No new devices found")
    return {"refresh": True}


def get_instance_info() -> InstanceDetails:
    return InstanceDetails(
        api_version="v1",
        actions=[
            InstanceAction(id="discover", icon="fa-search", title="Discover", handler=handle_discover),
            InstanceAction(id="reset", icon="fa-undo", title="Reset", description="Not available in the demo"),
        ],
    )


async def list_devices():
    return [
        DeviceInfo(id="test-123", name="Test 123", status="connected"),
        DeviceInfo(id="test-345", name="Test 345", status="disconnected", has_details=True),
        DeviceInfo(
            id="test-789",
            name="Test 789",
            status="connected",
            actions=[
                DeviceAction(id="play", icon="fas fa-play", handler=handle_play),
                DeviceAction(id="pause", icon="fa-pause", description="Pause device", handler=handle_pause),
                DeviceAction(id="forward", icon="forward", description="Forward"),
            ],
        ),
        DeviceInfo(
            id="test-ABC",
            name="Test ABC",
            status="connected",
            actions=[
                DeviceAction(id="forms", icon="fab fa-wpforms", description="Show forms flow", handler=handle_forms),
            ],
        ),
    ]


async def get_device_details(device_id: str) -> DeviceDetails:
    return DeviceDetails(id=device_id, schema=DEMO_DETAILS_SCHEMA)


def build_demo_handlers() -> DeviceManagementHandlers:
    return DeviceManagementHandlers(
        list_devices=list_devices,
        get_instance_info=get_instance_info,
        get_device_details=get_device_details,
    )
