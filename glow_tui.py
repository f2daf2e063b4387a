#!/usr/bin/env python3
"""
Glow TUI Controller

A terminal user interface for controlling LED string devices.
Uses the Textual framework for the TUI and glow_control for device communication.

Requirements:
    pip install textual

Usage:
    python3 glow_tui.py
    python3 glow_tui.py -t 8 --color-style 6col
"""

import argparse
from threading import Lock, Thread
from typing import Callable, Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.color import Color
from textual.containers import Container, Horizontal, ScrollableContainer
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import (
    Button, Footer, Header, ListItem, ListView, Static, TabbedContent, TabPane,
)

from glow_color import COLOR_STYLE_NAMES, LIGHTNESS_POLICY_NAMES, RGB, ColorModel
from glow_control import GlowController
from glow_discovery import find_devices
from glow_effects import (
    ColorMeander,
    EffectRunner,
    GlowConfig,
    GlowEngine,
    MeanderStyle,
    meander_frames,
    solid_frames,
    spectrum_frames,
)
from glow_protocol import NAMED_COLORS, DeviceIdentifier, DeviceMode, GlowError


# =============================================================================
# Device Communication Layer
# =============================================================================

class GlowManager:
    """Manages device sessions and the running effect for the TUI."""

    def __init__(self, timeout: float = 5.0, model: Optional[ColorModel] = None):
        self.timeout = timeout
        self.model = model or ColorModel()
        self.devices: dict[str, DeviceIdentifier] = {}
        self.controllers: dict[str, GlowController] = {}
        self.runner = EffectRunner()
        self.lock = Lock()

    def discover(self) -> list[DeviceIdentifier]:
        """Scan for devices, keeping the sessions of devices already known."""
        with self.lock:
            known = list(self.devices.values())
        result = find_devices(timeout=self.timeout, existing=known)

        with self.lock:
            for device in result.devices:
                self.devices[device.device_id] = device
                stale = self.controllers.pop(device.device_id, None)
                if stale:
                    stale.close()
            return list(self.devices.values())

    def controller(self, device: DeviceIdentifier) -> GlowController:
        """Connected controller for a device, created on first use."""
        with self.lock:
            controller = self.controllers.get(device.device_id)
            if controller is None:
                controller = GlowController.from_device(device, model=self.model)
                controller.connect()
                self.controllers[device.device_id] = controller
            return controller

    def set_power(self, device: DeviceIdentifier, on: bool):
        self.runner.stop()
        controller = self.controller(device)
        if on:
            controller.turn_on()
        else:
            controller.turn_off()

    def start_effect(self, device: DeviceIdentifier, effect: str, color: RGB,
                     speed: float = 0.02):
        """
        Start a real-time effect on a device in the background.

        Args:
            device: Target device
            effect: One of solid, shine, meander, spectrum
            color: Colour for solid and the first shine palette entry
            speed: Meander step length and spectrum shift per frame
        """
        controller = self.controller(device)
        led_count = controller.led_count
        frame_rate = 20.0

        if effect == "solid":
            source = solid_frames(led_count, color)
            frame_rate = 10.0
        elif effect == "shine":
            palette = [color, NAMED_COLORS['white'], NAMED_COLORS['orange']]
            config = GlowConfig(num_start_simultaneous=max(1, led_count // 50))
            source = GlowEngine(led_count, palette, config)
            frame_rate = config.frame_rate
        elif effect == "meander":
            walker = ColorMeander(MeanderStyle.SURFACE, speed=speed)
            source = meander_frames(walker, led_count, self.model)
        elif effect == "spectrum":
            source = spectrum_frames(controller.fetch_layout().coordinates, step=speed)
        else:
            raise ValueError(f"Unknown effect: {effect}")

        self.runner.stop()
        controller.set_mode(DeviceMode.REAL_TIME)
        self.runner.run_effect(controller, source, frame_rate)

    def stop_effect(self):
        self.runner.stop()

    def close(self):
        self.runner.stop()
        with self.lock:
            for controller in self.controllers.values():
                controller.close()
            self.controllers.clear()


# =============================================================================
# Custom Widgets
# =============================================================================

def render_track(fraction: float, width: int,
                 swatch: Optional[Callable[[float], RGB]] = None) -> str:
    """
    Markup for a slider track of width cells with a marker at fraction.

    With a swatch each cell is painted in the colour the swatch returns for
    the middle of that cell, so the track previews what the LEDs will show.
    """
    fraction = max(0.0, min(1.0, fraction))
    marker = min(width - 1, int(fraction * width))
    cells = []
    for i in range(width):
        if swatch is None:
            cells.append("┃" if i == marker else "━" if i < marker else "─")
            continue
        r, g, b = swatch((i + 0.5) / width)
        cells.append(f"[on #{r:02x}{g:02x}{b:02x}]{'┃' if i == marker else ' '}[/]")
    return "".join(cells)


class ChannelSlider(Static, can_focus=True):
    """Keyboard, click and wheel driven slider for one colour channel."""

    DEFAULT_CSS = """
    ChannelSlider {
        height: 1;
        margin: 1 1 0 1;
    }
    ChannelSlider:focus {
        background: $boost;
    }
    """

    BINDINGS = [
        Binding("left", "nudge(-1)", "Less", show=False),
        Binding("right", "nudge(1)", "More", show=False),
    ]

    LABEL_WIDTH = 12
    TRACK_WIDTH = 24

    value = reactive(0.0)

    class Changed(Message):
        def __init__(self, slider: "ChannelSlider", value: float) -> None:
            self.slider = slider
            self.value = value
            super().__init__()

    def __init__(self, label: str, bounds: tuple[float, float], value: float,
                 unit: str = "", steps: int = 20, id: Optional[str] = None) -> None:
        super().__init__(id=id)
        self.label = label
        self.low, self.high = bounds
        self.unit = unit
        self.step = (self.high - self.low) / steps
        self.swatch: Optional[Callable[[float], RGB]] = None
        self.set_reactive(ChannelSlider.value, self.validate_value(value))

    def validate_value(self, value: float) -> float:
        return max(self.low, min(self.high, value))

    @property
    def fraction(self) -> float:
        return (self.value - self.low) / (self.high - self.low)

    def set_swatch(self, swatch: Optional[Callable[[float], RGB]]) -> None:
        self.swatch = swatch
        if self.is_mounted:
            self._redraw()

    def format_value(self) -> str:
        sign = "+" if self.low < 0 else ""
        return f"{self.value:{sign}.0f}{self.unit}"

    def on_mount(self) -> None:
        self._redraw()

    def watch_value(self, value: float) -> None:
        if self.is_mounted:
            self._redraw()
            self.post_message(self.Changed(self, value))

    def _redraw(self) -> None:
        self.update(
            f"[b]{self.label:<{self.LABEL_WIDTH}}[/b]"
            f"{render_track(self.fraction, self.TRACK_WIDTH, self.swatch)} "
            f"{self.format_value():>6}"
        )

    def action_nudge(self, direction: int) -> None:
        self.value += direction * self.step

    def increment(self) -> None:
        self.action_nudge(1)

    def decrement(self) -> None:
        self.action_nudge(-1)

    def on_click(self, event) -> None:
        cell = event.x - self.LABEL_WIDTH
        if 0 <= cell < self.TRACK_WIDTH:
            self.value = self.low + cell / (self.TRACK_WIDTH - 1) * (self.high - self.low)

    def on_mouse_scroll_up(self, event) -> None:
        self.action_nudge(1)

    def on_mouse_scroll_down(self, event) -> None:
        self.action_nudge(-1)


class DeviceListItem(ListItem):
    """A list item representing a device."""

    def __init__(self, device: DeviceIdentifier) -> None:
        super().__init__()
        self.device = device

    def compose(self) -> ComposeResult:
        label = self.device.device_name or self.device.device_id
        yield Static(f"● {label} ({self.device.led_count})")


class ColorPreview(Static):
    """Shows the colour the LEDs will actually emit for the slider values."""

    DEFAULT_CSS = """
    ColorPreview {
        height: 3;
        margin: 1 2;
        border: solid $primary;
        content-align: center middle;
    }
    """

    def update_color(self, hue: float, sat: float, light: float, rgb: RGB):
        self.styles.background = Color(*rgb)
        # Dark text on light colours
        self.styles.color = Color(0, 0, 0) if sum(rgb) > 384 else Color(255, 255, 255)
        self.update(f"H:{hue * 360:.0f}°  S:{sat * 100:.0f}%  L:{light * 100:+.0f}%  "
                    f"RGB:{rgb[0]},{rgb[1]},{rgb[2]}")


# =============================================================================
# Main Panels
# =============================================================================

class DeviceSidebar(Container):
    """Sidebar showing discovered devices."""

    DEFAULT_CSS = """
    DeviceSidebar {
        width: 34;
        dock: left;
        border-right: tall $accent;
    }
    DeviceSidebar #sidebar-title {
        height: 3;
        text-align: center;
        text-style: bold reverse;
        padding-top: 1;
    }
    DeviceSidebar #btn-refresh {
        width: 100%;
    }
    DeviceSidebar #device-list {
        height: 1fr;
    }
    DeviceSidebar #device-count {
        dock: bottom;
        padding: 0 1;
        color: $text-muted;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("LED Strings", id="sidebar-title")
        yield Button("Refresh", id="btn-refresh", variant="primary")
        yield ListView(id="device-list")
        yield Static("", id="device-count")

    def update_devices(self, devices: list[DeviceIdentifier]):
        list_view = self.query_one("#device-list", ListView)
        list_view.clear()
        for device in sorted(devices):
            list_view.append(DeviceListItem(device))
        self.query_one("#device-count", Static).update(f"{len(devices)} device(s)")


PRESETS = ("red", "orange", "yellow", "green", "cyan", "blue", "purple", "pink")


class ControlPanel(Container):
    """Main control panel for the selected device."""

    DEFAULT_CSS = """
    ControlPanel {
        height: auto;
        padding: 0 1;
    }
    ControlPanel #device-title {
        text-style: bold;
        text-align: center;
        padding: 1;
    }
    ControlPanel #no-device-msg {
        text-align: center;
        padding: 4 0;
        color: $text-muted;
    }
    ControlPanel #device-status {
        padding: 1 1 0 1;
        color: $text-muted;
    }
    ControlPanel .button-row {
        height: auto;
        margin-top: 1;
    }
    ControlPanel .button-row Button {
        min-width: 10;
        margin-right: 1;
    }
    """

    current_device: reactive[Optional[DeviceIdentifier]] = reactive(None)

    def compose(self) -> ComposeResult:
        yield Static("Select a device", id="device-title")
        yield Static("← Choose a device from the sidebar", id="no-device-msg")

        with Container(id="controls-container"):
            with Horizontal(classes="button-row"):
                yield Button("ON", id="btn-power-on", variant="success")
                yield Button("OFF", id="btn-power-off", variant="error")
                yield Static("", id="device-status")

            yield ColorPreview(id="color-preview")

            with TabbedContent():
                with TabPane("Color", id="tab-color"):
                    yield ChannelSlider("Hue", (0, 360), 0, "°", steps=24, id="slider-hue")
                    yield ChannelSlider("Saturation", (0, 100), 100, "%", id="slider-sat")
                    yield ChannelSlider("Lightness", (-100, 100), 0, "%", id="slider-light")
                    with Horizontal(classes="button-row"):
                        yield Button("Show", id="effect-solid", variant="primary")

                with TabPane("Presets", id="tab-presets"):
                    with Horizontal(classes="button-row"):
                        for name in PRESETS[:4]:
                            yield Button(name.capitalize(), id=f"preset-{name}")
                    with Horizontal(classes="button-row"):
                        for name in PRESETS[4:]:
                            yield Button(name.capitalize(), id=f"preset-{name}")

                with TabPane("Effects", id="tab-effects"):
                    yield ChannelSlider("Speed", (1, 10), 2, steps=9, id="slider-speed")
                    with Horizontal(classes="button-row"):
                        yield Button("Shine", id="effect-shine")
                        yield Button("Meander", id="effect-meander")
                        yield Button("Spectrum", id="effect-spectrum")
                    with Horizontal(classes="button-row"):
                        yield Button("Stop", id="effect-stop", variant="error")

    def on_mount(self):
        self.query_one("#controls-container").display = False

    def watch_current_device(self, device: Optional[DeviceIdentifier]) -> None:
        if device:
            self.query_one("#no-device-msg").display = False
            self.query_one("#controls-container").display = True
            self.query_one("#device-title", Static).update(device.device_name or device.device_id)
            self.query_one("#device-status", Static).update(
                f"  {device.ip_address}  {device.mac_address}  {device.led_count} LEDs"
            )
        else:
            self.query_one("#no-device-msg").display = True
            self.query_one("#controls-container").display = False
            self.query_one("#device-title", Static).update("Select a device")


# =============================================================================
# Main Application
# =============================================================================

class GlowApp(App):
    """LED string TUI controller."""

    CSS = """
    Screen {
        layout: horizontal;
    }
    #main-area {
        width: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "refresh", "Refresh"),
        Binding("s", "stop_effect", "Stop"),
        Binding("up", "slider_up", "Increase", show=False),
        Binding("down", "slider_down", "Decrease", show=False),
    ]

    TITLE = "Glow Controller"

    def __init__(self, timeout: float = 5.0, model: Optional[ColorModel] = None):
        super().__init__()
        self.glow = GlowManager(timeout=timeout, model=model)
        self.selected_device: Optional[DeviceIdentifier] = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield DeviceSidebar()
        with ScrollableContainer(id="main-area"):
            yield ControlPanel()
        yield Footer()

    def on_mount(self) -> None:
        self._paint_tracks()
        self.action_refresh()

    def on_unmount(self) -> None:
        self.glow.close()

    def action_refresh(self) -> None:
        """Refresh device list."""
        self.notify("Scanning for devices...", timeout=1)

        def do_scan():
            try:
                devices = self.glow.discover()
            except GlowError as e:
                self.call_from_thread(self.notify, f"Scan failed: {e}", severity="error")
                return
            self.call_from_thread(self._update_device_list, devices)

        Thread(target=do_scan, daemon=True).start()

    def _update_device_list(self, devices: list[DeviceIdentifier]) -> None:
        self.query_one(DeviceSidebar).update_devices(devices)
        self.notify(f"Found {len(devices)} device(s)")

    def action_stop_effect(self) -> None:
        self.glow.stop_effect()
        self.notify("Effect stopped")

    def action_slider_up(self) -> None:
        if isinstance(self.focused, ChannelSlider):
            self.focused.increment()

    def action_slider_down(self) -> None:
        if isinstance(self.focused, ChannelSlider):
            self.focused.decrement()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, DeviceListItem):
            self.glow.stop_effect()
            self.selected_device = event.item.device
            self.query_one(ControlPanel).current_device = self.selected_device
            self._update_preview()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id

        if button_id == "btn-refresh":
            self.action_refresh()
        elif button_id == "btn-power-on" and self.selected_device:
            self._run_device_action(lambda d: self.glow.set_power(d, True), "Turned on")
        elif button_id == "btn-power-off" and self.selected_device:
            self._run_device_action(lambda d: self.glow.set_power(d, False), "Turned off")
        elif button_id and button_id.startswith("preset-"):
            self._apply_preset(button_id.replace("preset-", ""))
        elif button_id and button_id.startswith("effect-"):
            effect = button_id.replace("effect-", "")
            if effect == "stop":
                self.action_stop_effect()
            else:
                self._start_effect(effect)

    def _slider_hsl(self) -> tuple[float, float, float]:
        hue = self.query_one("#slider-hue", ChannelSlider).value / 360
        sat = self.query_one("#slider-sat", ChannelSlider).value / 100
        light = self.query_one("#slider-light", ChannelSlider).value / 100
        return hue, sat, light

    def _current_rgb(self) -> RGB:
        return self.glow.model.hsl_color(*self._slider_hsl())

    def _paint_tracks(self) -> None:
        """Paint the hue and lightness tracks in the colours the LEDs will show."""
        model = self.glow.model
        hue, sat, _ = self._slider_hsl()
        self.query_one("#slider-hue", ChannelSlider).set_swatch(
            lambda f: model.hsl_color(f, 1.0, 0.0))
        self.query_one("#slider-light", ChannelSlider).set_swatch(
            lambda f: model.hsl_color(hue, sat, 2 * f - 1))

    def _update_preview(self) -> None:
        hue, sat, light = self._slider_hsl()
        self.query_one("#color-preview", ColorPreview).update_color(
            hue, sat, light, self._current_rgb()
        )

    def _run_device_action(self, action, message: str) -> None:
        """Run a blocking device call off the UI thread."""
        device = self.selected_device

        def work():
            try:
                action(device)
            except GlowError as e:
                self.call_from_thread(self.notify, f"Error: {e}", severity="error")
                return
            self.call_from_thread(self.notify, message)

        Thread(target=work, daemon=True).start()

    def _start_effect(self, effect: str) -> None:
        if not self.selected_device:
            return
        color = self._current_rgb()
        speed = self.query_one("#slider-speed", ChannelSlider).value / 100
        self._run_device_action(
            lambda d: self.glow.start_effect(d, effect, color, speed=speed),
            f"Effect: {effect}",
        )

    def _apply_preset(self, preset: str) -> None:
        if not self.selected_device:
            return
        rgb = NAMED_COLORS[preset]
        self._run_device_action(
            lambda d: self.glow.start_effect(d, "solid", rgb),
            f"Color: {preset}",
        )

    def on_channel_slider_changed(self, event: ChannelSlider.Changed) -> None:
        if event.slider.id == "slider-speed":
            return
        if event.slider.id != "slider-light":
            self._paint_tracks()
        self._update_preview()


# =============================================================================
# Entry Point
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description='Glow TUI Controller - Control LED strings from the terminal'
    )
    parser.add_argument(
        '-t', '--timeout',
        type=float,
        default=5.0,
        help='Discovery scan duration in seconds (default: 5.0)'
    )
    parser.add_argument(
        '--color-style',
        choices=sorted(COLOR_STYLE_NAMES) + sorted(LIGHTNESS_POLICY_NAMES),
        help='Hue ramp or lightness policy for the HSL sliders'
    )
    args = parser.parse_args()

    model = ColorModel.from_style(args.color_style) if args.color_style else None
    app = GlowApp(timeout=args.timeout, model=model)
    app.run()


if __name__ == "__main__":
    main()
