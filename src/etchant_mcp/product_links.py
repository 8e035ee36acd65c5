"""Keyword detection of preparation product links in material notes.

Each entry maps a set of keywords (and optional exclusions) to an equipment
page and/or a supplies shop collection. Entry order is the output order.
"""

from typing import Any

_EQUIPMENT_BASE = "https://www.metallographic.com/metallographic-equipment"
_SHOP_BASE = "https://shop.metallographic.com/collections"

# key -> link definition. Keys ending in "Equipment" link to the equipment
# page first and the shop collection second.
PRODUCT_LINKS: dict[str, dict[str, Any]] = {
    # Sectioning
    "precisionWaferingEquipment": {
        "label": "Precision Wafering Equipment",
        "url": f"{_EQUIPMENT_BASE}/precision-wafering.html",
        "shop_url": f"{_SHOP_BASE}/cutting",
        "shop_label": "Cutting Supplies",
        "keywords": ("diamond saw", "slow-speed diamond", "precision wafering", "wafering saw", "diamond saw with"),
        "exclude_keywords": ("polishing", "polish"),
        "stage": "sectioning",
    },
    "abrasiveSectioningEquipment": {
        "label": "Abrasive Sectioning Equipment",
        "url": f"{_EQUIPMENT_BASE}/abrasive-sectioning.html",
        "shop_url": f"{_SHOP_BASE}/cutting",
        "shop_label": "Cutting Supplies",
        "keywords": ("abrasive cutoff", "abrasive cut-off", "abrasive wheel", "abrasive cutting", "cutoff wheel"),
        "stage": "sectioning",
    },
    "cuttingFluid": {
        "label": "Cutting Fluids",
        "url": f"{_SHOP_BASE}/abrasive-cutting-fluid",
        "keywords": ("coolant", "cutting fluid", "lubricant", "with coolant"),
        "stage": "sectioning",
    },
    # Mounting
    "compressionMountingEquipment": {
        "label": "Compression Mounting Equipment",
        "url": f"{_EQUIPMENT_BASE}/compression-mounting.html",
        "shop_url": f"{_SHOP_BASE}/mounting",
        "shop_label": "Mounting Supplies",
        "keywords": ("compression mounting", "hot mounting", "mounting press", "compression mount"),
        "stage": "mounting",
    },
    "castableMountingEquipment": {
        "label": "Castable Mounting Equipment",
        "url": f"{_EQUIPMENT_BASE}/castable-mounting.html",
        "shop_url": f"{_SHOP_BASE}/mounting",
        "shop_label": "Mounting Supplies",
        "keywords": ("cold mounting", "castable mounting", "vacuum mounting", "pressure mounting", "uv curing"),
        "stage": "mounting",
    },
    # Grinding
    "grindingSupplies": {
        "label": "Grinding Supplies",
        "url": f"{_SHOP_BASE}/grinding",
        "keywords": (
            "grinding", "grit", "abrasive paper", "grinding paper", "grinding sequence",
            "120", "240", "320", "400", "600", "800", "1200",
        ),
        # SiC has its own entry; sectioning terms belong to wafering
        "exclude_keywords": ("diamond saw", "diamond blade", "diamond cutting", "sic"),
        "stage": "grinding",
    },
    "sicGrinding": {
        "label": "SiC Grinding",
        "url": f"{_SHOP_BASE}/sic-grinding",
        "keywords": ("sic", "silicon carbide", "sic paper", "sic grinding"),
        "stage": "grinding",
    },
    "handGrinderEquipment": {
        "label": "Hand Grinders (PENTA)",
        "url": f"{_EQUIPMENT_BASE}/grinding-polishing/penta.html",
        "keywords": ("hand grinder", "belt grinder", "penta"),
        "stage": "grinding",
    },
    # Polishing
    "polishingSupplies": {
        "label": "Polishing Supplies",
        "url": f"{_SHOP_BASE}/polishing",
        "keywords": (
            "polishing", "polish", "diamond paste", "diamond suspension", "colloidal silica",
            "alumina", "polishing pad", "polishing cloth", "polishing sequence",
            "μm", "um", "micron", "9μm", "6μm", "3μm", "1μm", "0.05μm", "0.5μm",
        ),
        "exclude_keywords": ("diamond saw", "diamond blade", "diamond cutting", "diamond wafering"),
        "stage": "polishing",
    },
    "manualPolisherEquipment": {
        "label": "Manual Polishers (NANO)",
        "url": f"{_EQUIPMENT_BASE}/grinding-polishing/nano.html",
        "keywords": ("manual polisher", "polishing wheel", "nano", "manual polishing"),
        "stage": "polishing",
    },
    "semiAutoPolisherEquipment": {
        "label": "Semi-Auto Polishers (FEMTO)",
        "url": f"{_EQUIPMENT_BASE}/grinding-polishing/femto.html",
        "keywords": ("semi-automated", "semi-auto", "automated polisher", "femto", "automated polishing"),
        "stage": "polishing",
    },
    "controlledRemovalPolisherEquipment": {
        "label": "Controlled Removal (ATTO)",
        "url": f"{_EQUIPMENT_BASE}/grinding-polishing/atto.html",
        "keywords": ("controlled removal", "pcb", "atto", "pcb manufacturing"),
        "stage": "polishing",
    },
    "vibratoryPolisherEquipment": {
        "label": "Vibratory Polishers (GIGA)",
        "url": f"{_EQUIPMENT_BASE}/grinding-polishing/giga.html",
        "keywords": ("vibratory", "vibratory polishing", "giga", "vibratory polisher"),
        "stage": "polishing",
    },
    # Etching
    "etchingSupplies": {
        "label": "Etching & Cleaning",
        "url": f"{_SHOP_BASE}/etching-and-cleaning",
        "keywords": ("etching", "etchant", "etch", "swabbing", "immersion", "nital", "picral", "electrolytic", "vapor", "reagent"),
        "stage": "etching",
    },
}

STAGES: tuple[str, ...] = ("sectioning", "mounting", "grinding", "polishing", "etching")

# Material fields holding the notes for each preparation stage
STAGE_NOTES_FIELDS: tuple[tuple[str, str], ...] = tuple(
    (stage, f"{stage}_notes") for stage in STAGES
)


def get_relevant_product_links(text: str | None) -> list[dict[str, Any]]:
    """Detect product links mentioned by keywords in free text.

    Args:
        text: Preparation notes or any free text

    Returns:
        Ordered, URL-deduplicated list of {label, url, is_equipment, stage}
    """
    if not text:
        return []

    lower_text = text.lower()
    links: list[dict[str, Any]] = []
    added: set[str] = set()

    for key, link in PRODUCT_LINKS.items():
        if any(ex in lower_text for ex in link.get("exclude_keywords", ())):
            continue
        if not any(kw in lower_text for kw in link["keywords"]):
            continue

        is_equipment = key.endswith("Equipment")
        shop_url = link.get("shop_url")
        url = link["url"] if is_equipment else (shop_url or link["url"])

        if url not in added:
            links.append({
                "label": link["label"],
                "url": url,
                "is_equipment": is_equipment,
                "stage": link["stage"],
            })
            added.add(url)

        # Equipment entries also surface their supplies collection
        if is_equipment and shop_url and shop_url not in added:
            links.append({
                "label": link.get("shop_label", "Supplies"),
                "url": shop_url,
                "is_equipment": False,
                "stage": link["stage"],
            })
            added.add(shop_url)

    return links


def group_links_by_stage(links: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Group detected links by preparation stage, omitting empty stages."""
    grouped: dict[str, list[dict[str, Any]]] = {}
    for stage in STAGES:
        stage_links = [link for link in links if link.get("stage") == stage]
        if stage_links:
            grouped[stage] = stage_links
    return grouped


def get_material_product_links(material: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
    """Links for a material's preparation notes, keyed by stage.

    Each ``<stage>_notes`` field is scanned on its own and everything it
    mentions is filed under that stage, even links whose own stage differs
    (polishing notes that say "etch" list the etching supplies). The general
    ``preparation_notes`` text is scanned last; its links go under their own
    stage unless that stage already lists the URL.
    """
    grouped: dict[str, list[dict[str, Any]]] = {}
    for stage, notes_field in STAGE_NOTES_FIELDS:
        links = get_relevant_product_links(material.get(notes_field))
        if links:
            grouped[stage] = links

    for link in get_relevant_product_links(material.get("preparation_notes")):
        stage_links = grouped.setdefault(link["stage"], [])
        if all(existing["url"] != link["url"] for existing in stage_links):
            stage_links.append(link)

    return {stage: grouped[stage] for stage in STAGES if stage in grouped}


def flatten_stage_links(grouped: dict[str, list[dict[str, Any]]]) -> list[dict[str, Any]]:
    """Stage-ordered links with each URL listed once."""
    links: list[dict[str, Any]] = []
    seen: set[str] = set()
    for stage_links in grouped.values():
        for link in stage_links:
            if link["url"] not in seen:
                links.append(link)
                seen.add(link["url"])
    return links
