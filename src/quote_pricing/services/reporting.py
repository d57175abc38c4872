"""
Reporting - read-only views over price history and pricing matrices.

Used by the audit/reporting side of the back office; nothing here mutates a
quote or a package.
"""
import pandas as pd

from ..engine.models import ON_REQUEST_LABEL, Package, PriceChangeReason, Quote, is_on_request

HISTORY_COLUMNS = ['timestamp', 'price', 'reason', 'user_id', 'change']
MATRIX_COLUMNS = ['period', 'period_type', 'start_date', 'end_date', 'tier_index', 'tier', 'nights', 'price', 'on_request']


def price_history_frame(quote: Quote) -> pd.DataFrame:
    """One row per history entry, oldest first, with the change from the previous entry."""
    if not quote.price_history:
        return pd.DataFrame(columns=HISTORY_COLUMNS)

    df = pd.DataFrame([
        {
            'timestamp': entry.timestamp,
            'price': entry.price,
            'reason': entry.reason.value,
            'user_id': entry.user_id,
        }
        for entry in quote.price_history
    ])
    df['change'] = df['price'].diff().fillna(0.0).round(2)
    return df[HISTORY_COLUMNS]


def price_history_summary(quote: Quote) -> dict:
    """Get statistics about a quote's price history."""
    df = price_history_frame(quote)
    by_reason = {reason.value: 0 for reason in PriceChangeReason}
    if df.empty:
        return {
            'entries': 0,
            'by_reason': by_reason,
            'first_price': None,
            'current_price': quote.total_price,
            'net_change': 0.0,
            'manual_overrides': 0,
            'in_sync': quote.linked_package is not None and not quote.linked_package.custom_price_applied,
        }

    for reason, count in df['reason'].value_counts().items():
        by_reason[reason] = int(count)

    first = float(df['price'].iloc[0])
    last = float(df['price'].iloc[-1])
    return {
        'entries': int(len(df)),
        'by_reason': by_reason,
        'first_price': first,
        'current_price': last,
        'net_change': round(last - first, 2),
        'manual_overrides': by_reason[PriceChangeReason.MANUAL_OVERRIDE.value],
        'in_sync': quote.linked_package is not None and not quote.linked_package.custom_price_applied,
    }


def pricing_matrix_frame(package: Package) -> pd.DataFrame:
    """Flatten a package's pricing matrix into one row per price cell."""
    rows = []
    for period in package.pricing_matrix:
        for cell in period.prices:
            tier = (
                package.group_size_tiers[cell.tier_index].label
                if 0 <= cell.tier_index < len(package.group_size_tiers) else None
            )
            on_request = is_on_request(cell.price)
            rows.append({
                'period': period.period_label,
                'period_type': period.period_type,
                'start_date': period.start_date,
                'end_date': period.end_date,
                'tier_index': cell.tier_index,
                'tier': tier,
                'nights': cell.nights,
                'price': None if on_request else cell.price,
                'on_request': on_request,
            })
    if not rows:
        return pd.DataFrame(columns=MATRIX_COLUMNS)
    return pd.DataFrame(rows, columns=MATRIX_COLUMNS)


def _iso(value):
    if value is None or pd.isna(value):
        return None
    return value.isoformat()


def matrix_records(package: Package) -> list[dict]:
    """JSON-safe rows of the pricing matrix (ON_REQUEST cells keep the sentinel label)."""
    df = pricing_matrix_frame(package)
    records = []
    for row in df.to_dict(orient='records'):
        records.append({
            'period': row['period'],
            'periodType': row['period_type'],
            'startDate': _iso(row['start_date']),
            'endDate': _iso(row['end_date']),
            'tierIndex': int(row['tier_index']),
            'tier': row['tier'],
            'nights': int(row['nights']),
            'price': ON_REQUEST_LABEL if row['on_request'] else float(row['price']),
        })
    return records
