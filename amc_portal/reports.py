# amc_portal/reports.py
import matplotlib
matplotlib.use('Agg')  # no display on the server

import base64
import io

import matplotlib.pyplot as plt
import pandas as pd
from fastapi import APIRouter, Depends

from amc_portal.database import get_db
from amc_portal.dependencies import authorize_route
from amc_portal.task_status import COLORS, VALID_CATEGORIES, compute_color_status, utc_now

router = APIRouter(dependencies=[Depends(authorize_route)])

BAR_COLORS = {"red": "#d9534f", "orange": "#f0ad4e", "green": "#5cb85c"}


def safe_rate(part, whole):
    return round(part / whole, 4) if whole else 0.0


def _text(value):
    return value if isinstance(value, str) else None


def load_task_frame(now=None):
    """Tasks joined with assignee names, plus the derived colour per row."""
    now = now or utc_now()
    conn = get_db()
    df = pd.read_sql("""
        SELECT t.id, t.category, t.status, t.benchmark_time, t.actual_time,
               t.assigned_to, u.username AS assignee
        FROM tasks t
        LEFT JOIN users u ON t.assigned_to = u.id
    """, conn)
    conn.close()

    if df.empty:
        df["color_status"] = pd.Series(dtype=str)
        return df

    df["color_status"] = [
        compute_color_status(row.status, _text(row.benchmark_time), _text(row.actual_time), now)
        for row in df.itertuples()
    ]
    df["assignee"] = df["assignee"].fillna("unassigned")
    return df


def compliance_summary(now=None):
    df = load_task_frame(now)
    completed = df[df["status"] == "completed"]
    on_time = completed[completed["color_status"] == "green"]

    by_category = {}
    for category in VALID_CATEGORIES:
        subset = df[df["category"] == category]
        done = subset[subset["status"] == "completed"]
        by_category[category] = {
            "total": int(len(subset)),
            "completed": int(len(done)),
            "on_time": int((done["color_status"] == "green").sum()),
            "overdue": int(((subset["status"] != "completed") & (subset["color_status"] == "red")).sum()),
        }

    by_assignee = []
    if not df.empty:
        grouped = df.groupby("assignee")
        for assignee, group in grouped:
            done = group[group["status"] == "completed"]
            by_assignee.append({
                "assignee": assignee,
                "total": int(len(group)),
                "completed": int(len(done)),
                "completion_rate": safe_rate(len(done), len(group)),
            })

    color_counts = df["color_status"].value_counts() if not df.empty else pd.Series(dtype=int)

    conn = get_db()
    equipment = pd.read_sql("SELECT status, COUNT(*) AS total FROM equipment GROUP BY status", conn)
    conn.close()

    return {
        "total_tasks": int(len(df)),
        "completed": int(len(completed)),
        "completion_rate": safe_rate(len(completed), len(df)),
        "on_time_rate": safe_rate(len(on_time), len(completed)),
        "colors": {color: int(color_counts.get(color, 0)) for color in COLORS},
        "by_category": by_category,
        "by_assignee": by_assignee,
        "equipment_status": {row.status: int(row.total) for row in equipment.itertuples()},
    }


def compliance_chart(now=None):
    """Stacked bar of task colours per category, as a PNG data URI."""
    df = load_task_frame(now)
    counts = pd.DataFrame(0, index=VALID_CATEGORIES, columns=COLORS)
    if not df.empty:
        table = pd.crosstab(df["category"], df["color_status"])
        counts = counts.add(table, fill_value=0).loc[VALID_CATEGORIES, COLORS]

    fig, ax = plt.subplots(figsize=(6, 4))
    bottom = [0] * len(VALID_CATEGORIES)
    for color in COLORS:
        values = counts[color].astype(int).tolist()
        ax.bar(VALID_CATEGORIES, values, bottom=bottom, color=BAR_COLORS[color], label=color)
        bottom = [b + v for b, v in zip(bottom, values)]
    ax.set_title("Task timeliness by category")
    ax.set_ylabel("Tasks")
    ax.legend()
    fig.tight_layout()

    buffer = io.BytesIO()
    fig.savefig(buffer, format="png")
    plt.close(fig)
    encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{encoded}"


@router.get("/compliance")
def get_compliance_report():
    return {"success": True, "data": compliance_summary()}


@router.get("/compliance/chart")
def get_compliance_chart():
    return {"success": True, "data": {"chart": compliance_chart()}}
