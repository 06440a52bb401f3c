"""
Demo Data Seeder for OE Approvals

Creates a small approver directory through the admin API:
- Area Managers, a Head of Operations and an HR manager
- Area Manager assignments for the demo stores
- The approval rules used by the Operational Excellence team

Run this script against a running backend to try the approval flow.
"""
import os
from typing import Dict, List

import requests

# API Configuration
API_URL = os.getenv("OEAPP_API_URL", "http://localhost:8000")
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "admin-secret-key-change-in-production")
HEADERS = {"X-Admin-Key": ADMIN_API_KEY}

DEMO_APPROVERS = [
    {"name": "Rami Khoury", "email": "rami.khoury@example.com", "roles": ["AreaManager"]},
    {"name": "Lina Haddad", "email": "lina.haddad@example.com", "roles": ["AreaManager"]},
    {"name": "Omar Saleh", "email": "omar.saleh@example.com", "roles": ["HeadOfOperations"]},
    {"name": "Maya Nasr", "email": "maya.nasr@example.com", "roles": ["HR"]},
]

# Store -> Area Manager email
DEMO_STORES = {
    "City Centre Store": "rami.khoury@example.com",
    "Marina Mall Store": "lina.haddad@example.com",
    "Happy Kids Store": "lina.haddad@example.com",
}

DEMO_RULES = [
    {
        "name": "Happy stores skip Area Manager",
        "trigger_field": "store",
        "trigger_operator": "contains",
        "trigger_value": "Happy",
        "action_type": "skip",
        "target_approver": "AreaManager",
        "priority": 10,
    },
    {
        "name": "Happy categories skip Area Manager",
        "trigger_field": "category",
        "trigger_operator": "contains",
        "trigger_value": "Happy",
        "action_type": "skip",
        "target_approver": "AreaManager",
        "priority": 11,
    },
    {
        "name": "Helpers require HR",
        "trigger_field": "category",
        "trigger_operator": "equals",
        "trigger_value": "Helpers",
        "action_type": "add",
        "target_approver": "HR",
        "priority": 20,
    },
]


def existing_approvers() -> Dict[str, Dict]:
    """Directory entries keyed by lowercase email"""
    response = requests.get(f"{API_URL}/admin/approvers?include_inactive=true", headers=HEADERS)
    response.raise_for_status()
    return {a["email"].lower(): a for a in response.json() if a.get("email")}


def create_approver(data: Dict) -> Dict:
    response = requests.post(f"{API_URL}/admin/approvers", json=data, headers=HEADERS)
    response.raise_for_status()
    return response.json()


def assign_store(store: str, approver_id: int) -> Dict:
    response = requests.put(
        f"{API_URL}/admin/stores",
        json={"store": store, "area_manager_id": approver_id},
        headers=HEADERS,
    )
    response.raise_for_status()
    return response.json()


def existing_rules() -> List[Dict]:
    response = requests.get(f"{API_URL}/admin/rules", headers=HEADERS)
    response.raise_for_status()
    return response.json()


def create_rule(data: Dict) -> Dict:
    response = requests.post(f"{API_URL}/admin/rules", json=data, headers=HEADERS)
    response.raise_for_status()
    return response.json()


def seed_demo_data():
    """Main function to seed all demo data"""
    print("OE Approvals Demo Data Seeder")
    print("=" * 50)

    # Step 1: Approver directory
    print("\nCreating approvers...")
    directory = existing_approvers()
    for approver in DEMO_APPROVERS:
        key = approver["email"].lower()
        if key in directory:
            print(f"[!] {approver['email']} already exists, skipping...")
            continue
        directory[key] = create_approver(approver)
        print(f"[+] Created approver: {approver['name']} ({', '.join(approver['roles'])})")

    # Step 2: Store responsibles
    print("\nAssigning Area Managers to stores...")
    for store, email in DEMO_STORES.items():
        manager = directory.get(email.lower())
        if manager is None:
            print(f"[-] No approver {email} for {store}")
            continue
        assign_store(store, manager["id"])
        print(f"[+] {store} -> {manager['name']}")

    # Step 3: Approval rules
    print("\nCreating approval rules...")
    names = {r["name"] for r in existing_rules()}
    created_rules = 0
    for rule in DEMO_RULES:
        if rule["name"] in names:
            print(f"[!] Rule '{rule['name']}' already exists, skipping...")
            continue
        create_rule(rule)
        created_rules += 1
        print(f"[+] Created rule: {rule['name']}")

    # Summary
    print("\n" + "=" * 50)
    print("Demo data seeding complete!")
    print(f"Approvers in directory: {len(directory)}")
    print(f"Stores assigned: {len(DEMO_STORES)}")
    print(f"Rules created: {created_rules}")


if __name__ == "__main__":
    try:
        seed_demo_data()
    except Exception as e:
        print(f"\n[-] Error during seeding: {e}")
        print(f"Make sure the backend is running on {API_URL}")
