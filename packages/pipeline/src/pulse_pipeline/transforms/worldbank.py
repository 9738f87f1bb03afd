"""
transforms/worldbank.py — World Bank indicator catalogue and transformer.

The World Bank v2 API answers
    GET /country/PSE/indicator/{code}?format=json&date=2010:2024&per_page=100
with a two-element array `[page_meta, rows]`; rows look like
    {"date": "2022", "value": 18037.6, "country": {"id": "PS", "value": "West Bank and Gaza"}, ...}
`rows` is null when the indicator has no data for the country.

Usage:
    from pulse_pipeline.transforms.worldbank import INDICATORS, transform_indicator

    records = transform_indicator(payload, "SP.POP.TOTL", INDICATORS["SP.POP.TOTL"])
    indicator_category("SP.POP.TOTL")           # "population"
    indicator_unit("GDP (current US$)")         # "currency_usd"
"""

from __future__ import annotations

from typing import Any

from pulse_pipeline.transforms.payloads import PayloadError
from pulse_pipeline.transforms.normalize import safe_float, safe_int

SOURCE = "worldbank"

# ---------------------------------------------------------------------------
# Indicator catalogue: code -> display name
# ---------------------------------------------------------------------------

INDICATORS: dict[str, str] = {
    # Economic
    "NY.GDP.MKTP.CD": "GDP (current US$)",
    "NY.GDP.MKTP.KD.ZG": "GDP growth (annual %)",
    "NY.GDP.PCAP.CD": "GDP per capita (current US$)",
    "NY.GDP.PCAP.KD.ZG": "GDP per capita growth (annual %)",
    "NE.EXP.GNFS.ZS": "Exports of goods and services (% of GDP)",
    "NE.IMP.GNFS.ZS": "Imports of goods and services (% of GDP)",
    "GC.TAX.TOTL.GD.ZS": "Tax revenue (% of GDP)",
    "FP.CPI.TOTL.ZG": "Inflation, consumer prices (annual %)",
    "NY.GNP.PCAP.CD": "GNI per capita, Atlas method (current US$)",
    # Population
    "SP.POP.TOTL": "Population, total",
    "SP.POP.GROW": "Population growth (annual %)",
    "SP.URB.TOTL.IN.ZS": "Urban population (% of total)",
    "SP.URB.GROW": "Urban population growth (annual %)",
    "SP.POP.0014.TO.ZS": "Population ages 0-14 (% of total)",
    "SP.POP.1564.TO.ZS": "Population ages 15-64 (% of total)",
    "SP.POP.65UP.TO.ZS": "Population ages 65 and above (% of total)",
    "SP.DYN.TFRT.IN": "Fertility rate, total (births per woman)",
    "SP.DYN.LE00.IN": "Life expectancy at birth, total (years)",
    # Labor
    "SL.UEM.TOTL.ZS": "Unemployment, total (% of total labor force)",
    "SL.UEM.TOTL.FE.ZS": "Unemployment, female (% of female labor force)",
    "SL.UEM.TOTL.MA.ZS": "Unemployment, male (% of male labor force)",
    "SL.TLF.CACT.ZS": "Labor force participation rate, total (% of total population ages 15+)",
    "SL.TLF.CACT.FE.ZS": "Labor force participation rate, female (% of female population ages 15+)",
    "SL.TLF.CACT.MA.ZS": "Labor force participation rate, male (% of male population ages 15+)",
    # Poverty and inequality
    "SI.POV.GINI": "Gini index",
    "SI.POV.DDAY": "Poverty headcount ratio at $2.15 a day (2017 PPP) (% of population)",
    "SI.POV.NAHC": "Poverty headcount ratio at national poverty lines (% of population)",
    "SI.POV.GAPS": "Poverty gap at $2.15 a day (2017 PPP) (%)",
    "SI.POV.LMIC": "Poverty headcount ratio at $3.65 a day (2017 PPP) (% of population)",
    "SI.POV.UMIC": "Poverty headcount ratio at $6.85 a day (2017 PPP) (% of population)",
    "SI.POV.LMIC.GP": "Poverty gap at $3.65 a day (2017 PPP) (%)",
    "SI.DST.FRST.20": "Income share held by lowest 20%",
    "SI.DST.05TH.20": "Income share held by highest 20%",
    # Education
    "SE.PRM.ENRR": "School enrollment, primary (% gross)",
    "SE.SEC.ENRR": "School enrollment, secondary (% gross)",
    "SE.TER.ENRR": "School enrollment, tertiary (% gross)",
    "SE.PRM.CMPT.ZS": "Primary completion rate, total (% of relevant age group)",
    "SE.ADT.LITR.ZS": "Literacy rate, adult total (% of people ages 15 and above)",
    "SE.XPD.TOTL.GD.ZS": "Government expenditure on education, total (% of GDP)",
    # Health
    "SH.DYN.MORT": "Mortality rate, under-5 (per 1,000 live births)",
    "SH.DYN.NMRT": "Mortality rate, neonatal (per 1,000 live births)",
    "SH.STA.MMRT": "Maternal mortality ratio (per 100,000 live births)",
    "SH.MED.PHYS.ZS": "Physicians (per 1,000 people)",
    "SH.MED.BEDS.ZS": "Hospital beds (per 1,000 people)",
    "SH.XPD.CHEX.GD.ZS": "Current health expenditure (% of GDP)",
    "SH.IMM.IDPT": "Immunization, DPT (% of children ages 12-23 months)",
    # Infrastructure and technology
    "IT.NET.USER.ZS": "Individuals using the Internet (% of population)",
    "IT.CEL.SETS.P2": "Mobile cellular subscriptions (per 100 people)",
    "EG.ELC.ACCS.ZS": "Access to electricity (% of population)",
    "EG.USE.ELEC.KH.PC": "Electric power consumption (kWh per capita)",
    "IS.ROD.PAVE.ZP": "Roads, paved (% of total roads)",
    "EG.ELC.LOSS.ZS": "Electric power transmission and distribution losses (% of output)",
    "IT.MLT.MAIN.P2": "Fixed telephone subscriptions (per 100 people)",
    "IT.NET.BBND.P2": "Fixed broadband subscriptions (per 100 people)",
    "IS.AIR.DPRT": "Air transport, registered carrier departures worldwide",
    "IS.SHP.GOOD.TU": "Container port traffic (TEU: 20 foot equivalent units)",
    # Environment
    "EN.ATM.CO2E.PC": "CO2 emissions (metric tons per capita)",
    "AG.LND.FRST.ZS": "Forest area (% of land area)",
    "ER.H2O.FWTL.ZS": "Annual freshwater withdrawals, total (% of internal resources)",
    # Trade and business
    "NE.TRD.GNFS.ZS": "Trade (% of GDP)",
    "BX.KLT.DINV.WD.GD.ZS": "Foreign direct investment, net inflows (% of GDP)",
    "IC.BUS.EASE.XQ": "Ease of doing business score (0=lowest to 100=highest)",
    "TG.VAL.TOTL.GD.ZS": "Merchandise trade (% of GDP)",
    "BN.CAB.XOKA.GD.ZS": "Current account balance (% of GDP)",
    "BX.GSR.GNFS.CD": "Exports of goods and services (BoP, current US$)",
    "BM.GSR.GNFS.CD": "Imports of goods and services (BoP, current US$)",
    "TX.VAL.MRCH.CD.WT": "Merchandise exports (current US$)",
    "TM.VAL.MRCH.CD.WT": "Merchandise imports (current US$)",
    # Financial
    "FB.BNK.CAPA.ZS": "Bank capital to assets ratio (%)",
    "FS.AST.DOMS.GD.ZS": "Domestic credit to private sector (% of GDP)",
    "FM.LBL.BMNY.GD.ZS": "Broad money (% of GDP)",
    # Social development
    "SH.STA.SUIC.P5": "Suicide mortality rate (per 100,000 population)",
    "SH.PRV.SMOK": "Smoking prevalence, total (ages 15+)",
    "SP.DYN.CDRT.IN": "Death rate, crude (per 1,000 people)",
    "SH.H2O.SMDW.ZS": "People using safely managed drinking water services (% of population)",
    "SH.STA.SMSS.ZS": "People using safely managed sanitation services (% of population)",
    "SH.STA.BASS.ZS": "People using at least basic sanitation services (% of population)",
    "SP.DYN.CBRT.IN": "Birth rate, crude (per 1,000 people)",
}

# First matching prefix group wins; order matters (SH.STA.SUIC is social, not health).
_CATEGORY_PREFIXES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("poverty", ("SI.POV", "SI.DST")),
    ("trade", ("TG.VAL", "BN.CAB", "BX.GSR", "BM.GSR", "TX.VAL", "TM.VAL")),
    ("infrastructure", ("EG.ELC", "IS.", "IT.MLT", "IT.NET.BBND")),
    ("social", ("SH.STA.SUIC", "SH.PRV", "SP.DYN.CDRT", "SH.H2O", "SP.DYN.CBRT")),
    ("economic", ("NY.", "NE.", "GC.", "FP.")),
    ("population", ("SP.POP", "SP.URB", "SP.DYN.TFRT", "SP.DYN.LE")),
    ("labor", ("SL.",)),
    ("education", ("SE.",)),
    ("health", ("SH.",)),
    ("environment", ("EN.", "AG.LND", "ER.H2O")),
    ("financial", ("FB.", "FS.", "FM.")),
)

_UNIT_MARKERS: tuple[tuple[str, str], ...] = (
    ("(% of", "percentage"),
    ("(%)", "percentage"),
    ("US$", "currency_usd"),
    ("per 1,000", "per_1000"),
    ("per 100,000", "per_100000"),
    ("per 100 people", "per_100"),
    ("kWh", "kwh"),
    ("metric tons", "metric_tons"),
    ("births per woman", "births_per_woman"),
    ("years", "years"),
    ("TEU:", "teu"),
)


def indicator_category(code: str) -> str:
    for category, prefixes in _CATEGORY_PREFIXES:
        if code.startswith(prefixes):
            return category
    return "other"


def indicator_unit(name: str) -> str:
    for marker, unit in _UNIT_MARKERS:
        if marker in name:
            return unit
    return "number"


def indicator_filename(code: str, suffix: str = "") -> str:
    """'SP.POP.TOTL' -> 'sp_pop_totl.json' (or 'sp_pop_totl_validation.json')."""
    return f"{code.lower().replace('.', '_')}{suffix}.json"


# ---------------------------------------------------------------------------
# Transformer
# ---------------------------------------------------------------------------


def indicator_rows(payload: Any) -> list[dict[str, Any]]:
    """
    Return the data rows of a `[meta, rows]` response.

    Raises:
        PayloadError: the response is not a two-element array.
    """
    if not isinstance(payload, list) or len(payload) < 2:
        # An error response is a one-element array holding {"message": [...]}
        raise PayloadError(f"unexpected World Bank response: {str(payload)[:200]}")
    rows = payload[1]
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise PayloadError("World Bank data element is not an array")
    return [row for row in rows if isinstance(row, dict)]


def transform_indicator(payload: Any, code: str, name: str) -> list[dict[str, Any]]:
    """
    Standard records for one indicator, null values dropped, sorted by year.

    Returns:
        [{year, value, indicator, indicator_name, country, source}, ...]
    """
    records = []
    for row in indicator_rows(payload):
        value = safe_float(row.get("value"))
        year = safe_int(row.get("date"))
        if value is None or year is None:
            continue
        country = row.get("country")
        records.append(
            {
                "year": year,
                "value": row["value"] if isinstance(row["value"], (int, float)) else value,
                "indicator": code,
                "indicator_name": name,
                "country": country.get("value") if isinstance(country, dict) else country,
                "source": SOURCE,
            }
        )
    records.sort(key=lambda r: r["year"])
    return records


def category_summary(indicators: dict[str, str]) -> dict[str, dict[str, Any]]:
    """{category: {count, indicators: [{code, name}]}} over the fetched indicators."""
    summary: dict[str, dict[str, Any]] = {}
    for code, name in indicators.items():
        bucket = summary.setdefault(indicator_category(code), {"count": 0, "indicators": []})
        bucket["count"] += 1
        bucket["indicators"].append({"code": code, "name": name})
    return summary
