from typing import Any, Dict, Iterable, List

from database import serialize_all


def average(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def percent_present(attendance: List[Dict[str, Any]]) -> float:
    if not attendance:
        return 0.0
    present = sum(1 for a in attendance if a.get("status") == "present")
    return present / len(attendance) * 100


def grade_summary(grades: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Scores are normalised to a percentage of each assessment's max score"""
    assessments: Dict[str, Dict[str, Any]] = {}
    for grade in grades:
        entry = assessments.setdefault(grade["assessment_type"], {"count": 0, "scores": []})
        entry["count"] += 1
        entry["scores"].append(grade["score"] / grade["max_score"] * 100)

    return {
        "total_students": len({g["student_id"] for g in grades}),
        "assessments": {
            kind: {"count": e["count"], "average_score": round(average(e["scores"]), 2)}
            for kind, e in assessments.items()
        },
        "average_score": round(average(g["score"] / g["max_score"] * 100 for g in grades), 2),
    }


def student_performance(student: Dict[str, Any], grades: List[Dict[str, Any]],
                        attendance: List[Dict[str, Any]], completed_assignments: int) -> Dict[str, Any]:
    return {
        "student": {
            "id": str(student["_id"]),
            "first_name": student.get("first_name"),
            "last_name": student.get("last_name"),
        },
        "average_score": round(average(g["score"] for g in grades), 2),
        "attendance_rate": round(percent_present(attendance), 2),
        "completed_assignments": completed_assignments,
    }


def child_summary(child: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(child["_id"]),
        "name": f"{child.get('first_name')} {child.get('last_name')}",
        "grade": child.get("grade"),
    }


def child_progress(child: Dict[str, Any], grades: List[Dict[str, Any]],
                   attendance: List[Dict[str, Any]]) -> Dict[str, Any]:
    """``grades`` newest first (last 10), ``attendance`` newest first (last 30)"""
    present_days = sum(1 for a in attendance if a.get("status") == "present")
    return {
        "child": child_summary(child),
        "academic": {
            "average_grade": round(average(g["score"] for g in grades), 2),
            "recent_grades": serialize_all(grades[:5]),
            "total_grades": len(grades),
        },
        "attendance": {
            "percentage": round(percent_present(attendance), 2),
            "present_days": present_days,
            "total_days": len(attendance),
            "recent_attendance": serialize_all(attendance[:10]),
        },
    }


def child_attendance(child: Dict[str, Any], attendance: List[Dict[str, Any]]) -> Dict[str, Any]:
    counts = {"present": 0, "absent": 0, "late": 0}
    for record in attendance:
        status = record.get("status", "absent")
        counts[status] = counts.get(status, 0) + 1
    return {
        "child": child_summary(child),
        "percentage": round(percent_present(attendance), 2),
        "counts": counts,
        "records": serialize_all(attendance),
    }
