# =============================================================================
# RepairIQ - Static Component Explanations
# =============================================================================
# Canned explanations used when the generative explanation provider is not
# configured or fails.  Keys match the labels of the fallback class
# vocabulary in server/vocabulary.py.
# =============================================================================

from typing import Dict, List

COMPONENT_FALLBACK_DATA: Dict[str, Dict[str, object]] = {
    "ram_module": {
        "title": "RAM Module",
        "description": "Random Access Memory module for temporary data storage",
        "tips": [
            "Check compatibility with the motherboard before buying",
            "Match speed (MHz) and type (DDR3/DDR4/DDR5) with existing RAM",
            "Ground yourself before handling to prevent static damage",
        ],
        "troubleshooting": [
            "PC won't boot: reseat the RAM modules",
            "Blue screen errors: run a memory diagnostic",
        ],
    },
    "ram_stick": {
        "title": "RAM Stick",
        "description": "Individual Random Access Memory stick",
        "tips": [
            "Handle by the edges only",
            "Install in matching pairs for dual-channel performance",
        ],
        "troubleshooting": [
            "RAM not recognized: try a different slot",
            "Frequent crashes: run MemTest86",
        ],
    },
    "hard_drive": {
        "title": "Hard Drive",
        "description": "Traditional magnetic storage device",
        "tips": [
            "Back up important data regularly",
            "Keep away from magnets and handle gently",
        ],
        "troubleshooting": [
            "Clicking sounds: back up immediately, the drive is failing",
            "Not detected: check SATA and power cables",
        ],
    },
    "ssd": {
        "title": "Solid State Drive",
        "description": "Fast flash-based storage with no moving parts",
        "tips": [
            "Enable TRIM for longevity",
            "Leave 15-20% free space for best performance",
        ],
        "troubleshooting": [
            "Slow performance: check that TRIM is enabled",
            "Not detected: update firmware and check the slot or cable",
        ],
    },
    "capacitor": {
        "title": "Capacitor",
        "description": "Electronic component that stores and releases electrical energy",
        "tips": [
            "Large capacitors can hold a charge after power-off",
            "Look for bulging or leaking tops",
        ],
        "troubleshooting": [
            "Random shutdowns: inspect for swollen capacitors",
            "Board won't power on: have capacitors tested or replaced",
        ],
    },
    "motherboard": {
        "title": "Motherboard",
        "description": "Main circuit board connecting all computer components",
        "tips": [
            "Use standoffs when mounting in a case",
            "Keep the BIOS up to date",
        ],
        "troubleshooting": [
            "No POST: check power connectors and beep codes",
            "Components missing: reseat cards and check BIOS settings",
        ],
    },
    "charging_port": {
        "title": "Charging Port",
        "description": "Port for charging devices and data transfer",
        "tips": [
            "Keep the port free of lint and dust",
            "Insert cables straight to avoid bending pins",
        ],
        "troubleshooting": [
            "Loose connection: clean the port carefully",
            "Not charging: try another cable and charger",
        ],
    },
    "processor": {
        "title": "Processor (CPU)",
        "description": "Central processing unit - the brain of the computer",
        "tips": [
            "Never touch the pins or contact pads",
            "Apply fresh thermal paste when reinstalling a cooler",
        ],
        "troubleshooting": [
            "Overheating: check the cooler mount and thermal paste",
            "No boot: confirm socket and BIOS support",
        ],
    },
    "sim_slot": {
        "title": "SIM Card Slot",
        "description": "Slot for SIM cards in mobile devices",
        "tips": [
            "Power off the device before swapping SIM cards",
            "Use the correct ejector tool",
        ],
        "troubleshooting": [
            "No SIM detected: reseat the card and clean the contacts",
            "Tray stuck: do not force it, use the ejector hole",
        ],
    },
    "battery": {
        "title": "Battery",
        "description": "Portable power source for devices",
        "tips": [
            "Avoid full discharges and extreme heat",
            "Replace swollen batteries immediately",
        ],
        "troubleshooting": [
            "Drains quickly: check battery health in system settings",
            "Swelling: stop using the device and replace the battery",
        ],
    },
    "display_connector": {
        "title": "Display Connector",
        "description": "Interface for connecting displays (HDMI, DisplayPort, VGA)",
        "tips": [
            "Disconnect power before reseating internal display cables",
            "Check the latch on ribbon connectors",
        ],
        "troubleshooting": [
            "Flickering: reseat the display cable",
            "No image: test with an external display",
        ],
    },
    "usb_port": {
        "title": "USB Port",
        "description": "Universal Serial Bus port for connecting peripherals",
        "tips": [
            "Blue ports usually indicate USB 3.0 speeds",
            "Avoid overloading unpowered hubs",
        ],
        "troubleshooting": [
            "Device not recognized: try another port and reinstall drivers",
            "Port loose: check for bent contacts",
        ],
    },
    "hdmi_port": {
        "title": "HDMI Port",
        "description": "High-Definition Multimedia Interface for audio and video",
        "tips": [
            "Use a cable rated for your resolution and refresh rate",
            "Do not bend the cable sharply at the connector",
        ],
        "troubleshooting": [
            "No signal: select the correct input on the display",
            "No audio: set HDMI as the default playback device",
        ],
    },
    "ethernet_port": {
        "title": "Ethernet Port",
        "description": "Network port for wired internet connection",
        "tips": [
            "Use Cat5e or better for gigabit speeds",
            "Check the link lights when connecting",
        ],
        "troubleshooting": [
            "No connection: try another cable and switch port",
            "Slow speed: check negotiated link speed",
        ],
    },
    "vga_port": {
        "title": "VGA Port",
        "description": "Video Graphics Array - an older analog display connection",
        "tips": [
            "Tighten the thumbscrews for a stable signal",
            "Image quality drops at high resolutions",
        ],
        "troubleshooting": [
            "Blurry image: use the display's auto-adjust",
            "Color tint: check for bent pins",
        ],
    },
    "dvi_port": {
        "title": "DVI Port",
        "description": "Digital Visual Interface for displays",
        "tips": [
            "DVI-D carries digital video only",
            "Dual-link DVI is needed for high resolutions",
        ],
        "troubleshooting": [
            "No signal: confirm the cable type matches the port",
            "Artifacts: reseat and tighten the connector",
        ],
    },
    "power_supply_unit": {
        "title": "Power Supply Unit (PSU)",
        "description": "Converts AC power to DC for computer components",
        "tips": [
            "Never open a PSU - capacitors inside hold dangerous charge",
            "Choose a unit with headroom above your system's draw",
        ],
        "troubleshooting": [
            "PC won't start: check the PSU switch and power cable",
            "Random restarts: test with a known-good PSU",
        ],
    },
    "graphics_card": {
        "title": "Graphics Card (GPU)",
        "description": "Processes video and graphics for display",
        "tips": [
            "Connect all required PCIe power cables",
            "Keep drivers up to date",
        ],
        "troubleshooting": [
            "Artifacts: check temperatures and reseat the card",
            "No display: connect the monitor to the card, not the motherboard",
        ],
    },
    "cooling_fan": {
        "title": "Cooling Fan",
        "description": "Moves air to cool computer components",
        "tips": [
            "Clean dust regularly with compressed air",
            "Keep intake and exhaust airflow balanced",
        ],
        "troubleshooting": [
            "Grinding noise: replace the fan",
            "Not spinning: check the header connection and BIOS fan settings",
        ],
    },
    "heat_sink": {
        "title": "Heat Sink",
        "description": "Metal component that dissipates heat from chips",
        "tips": [
            "Use a thin, even layer of thermal paste",
            "Keep the fins free of dust",
        ],
        "troubleshooting": [
            "High temperatures: check mounting pressure",
            "Loose heat sink: re-secure the retention clips",
        ],
    },
    "sata_cable": {
        "title": "SATA Cable",
        "description": "Serial ATA cable for storage devices",
        "tips": [
            "Prefer cables with locking latches",
            "Avoid sharp bends near the connectors",
        ],
        "troubleshooting": [
            "Drive disappears: replace the SATA cable",
            "Slow transfers: try another SATA port",
        ],
    },
    "power_cable": {
        "title": "Power Cable",
        "description": "Electrical cable for powering devices",
        "tips": [
            "Check the cable's rated voltage and current",
            "Replace cables with damaged insulation",
        ],
        "troubleshooting": [
            "No power: try a different outlet and cable",
            "Intermittent power: check for a loose connection",
        ],
    },
    "vga_cable": {
        "title": "VGA Cable",
        "description": "Analog video cable for older displays",
        "tips": [
            "Shorter cables give a sharper image",
            "Secure both thumbscrews",
        ],
        "troubleshooting": [
            "Ghosting: replace with a shielded cable",
            "Missing colors: inspect the pins",
        ],
    },
    "dvi_cable": {
        "title": "DVI Cable",
        "description": "Digital video cable for displays",
        "tips": [
            "Match single-link or dual-link to the display",
            "Secure both thumbscrews",
        ],
        "troubleshooting": [
            "Sparkles on screen: replace the cable",
            "No signal: check the cable type against the port",
        ],
    },
    "keyboard": {
        "title": "Keyboard",
        "description": "Input device for typing",
        "tips": [
            "Clean under the keys periodically",
            "Keep liquids away",
        ],
        "troubleshooting": [
            "Keys not working: try another USB port or fresh batteries",
            "Repeated characters: clean the affected switch",
        ],
    },
    "mouse": {
        "title": "Mouse",
        "description": "Pointing device for cursor control",
        "tips": [
            "Use a mouse pad for consistent tracking",
            "Clean the sensor window",
        ],
        "troubleshooting": [
            "Jumpy cursor: clean the sensor and change surface",
            "Not detected: re-pair or replace batteries",
        ],
    },
    "monitor": {
        "title": "Monitor",
        "description": "Display screen for visual output",
        "tips": [
            "Use the display's native resolution",
            "Clean with a dry microfiber cloth",
        ],
        "troubleshooting": [
            "No signal: check the input source and cable",
            "Flicker: check the refresh rate and cable",
        ],
    },
    "speakers": {
        "title": "Speakers",
        "description": "Audio output devices for sound",
        "tips": [
            "Keep volume moderate to avoid distortion",
            "Place away from magnetic-sensitive devices",
        ],
        "troubleshooting": [
            "No sound: check volume and connections",
            "One side silent: check balance settings and the cable",
        ],
    },
}

_FALLBACK_NOTE = (
    "Note: this is fallback information. For more detailed assistance, "
    "consult the component manual or a professional technician."
)


def _bullets(items: List[str]) -> str:
    return "\n".join(f"  - {item}" for item in items)


def fallback_text(label: str) -> str:
    """
    Render the static explanation for ``label`` as plain text.

    Labels without an entry get a generic description.
    """
    data = COMPONENT_FALLBACK_DATA.get(label)
    if data is None:
        return (
            f"{label}\n"
            "Hardware component detected. No detailed information available.\n"
            "This appears to be a computer hardware component that requires "
            "specific handling and care."
        )

    return "\n".join([
        str(data["title"]),
        f"Description: {data['description']}",
        "",
        "Tips & best practices:",
        _bullets(data["tips"]),
        "",
        "Troubleshooting:",
        _bullets(data["troubleshooting"]),
        "",
        _FALLBACK_NOTE,
    ])
