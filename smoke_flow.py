#!/usr/bin/env python3
"""
Manual smoke test for the parking-fee payment flow against a running gateway.

Walks through wallets -> incoming payment -> interactive grant, pauses while
you approve the grant in a browser, then finishes the grant and pays.

Usage:
    python smoke_flow.py 1500
    python smoke_flow.py 1500 http://localhost:3001
"""
import sys

import requests


def call(method: str, url: str, **kwargs) -> dict:
    response = requests.request(method, url, timeout=90, **kwargs)
    data = response.json()
    if response.status_code != 200 or not data.get("ok"):
        error = data.get("error", {})
        print(f"❌ HTTP {response.status_code}: {error.get('error_code')} - {error.get('message')}")
        if data.get("upstreamStatus"):
            print(f"   Upstream status: {data['upstreamStatus']}")
        sys.exit(1)
    return data


def run_flow(amount: str, base_url: str):
    """Run one payment end to end."""
    print(f"🔗 Gateway: {base_url}")
    print("=" * 70)

    try:
        wallets = call("GET", f"{base_url}/op/wallets")
        sender = wallets["senderWallet"]
        receiver = wallets["receiverWallet"]
        print(f"👛 Payer: {sender['id']} ({sender['assetCode']})")
        print(f"👛 Payee: {receiver['id']} ({receiver['assetCode']})")

        incoming = call("POST", f"{base_url}/op/incoming", json={"receiveValueMinor": amount})["incomingPayment"]
        print(f"\n📥 Incoming payment: {incoming['id']}")
        print(f"   State: {incoming['state']}  Amount: {incoming['incomingAmount']['value']}")

        pending = call("POST", f"{base_url}/op/outgoing/start", json={"incomingPaymentId": incoming["id"]})
        print("\n🔐 Approve the payment in your browser:")
        print(f"   {pending['redirectUrl']}")
        print("\nAfter approving, the finish page shows interact_ref and hash.")
        interact_ref = input("interact_ref: ").strip()
        interaction_hash = input("hash: ").strip()

        finished = call("POST", f"{base_url}/op/outgoing/finish", json={
            "incomingPaymentId": incoming["id"],
            "continueUri": pending["continueUri"],
            "continueAccessToken": pending["continueAccessToken"],
            "interact_ref": interact_ref,
            "hash": interaction_hash,
        })
        print(f"\n✅ Grant finalized for {finished['senderWalletId']}")

        paid = call("POST", f"{base_url}/op/outgoing/pay", json={
            "incomingPaymentId": incoming["id"],
            "grantAccessToken": finished["grantAccessToken"],
        })
        outgoing = paid["outgoingPayment"]
        print(f"\n💸 Outgoing payment: {outgoing['id']}")
        print(f"   Tier: {paid['tier']}")
        print(f"   State: {outgoing.get('state')} ({paid['settlement']['outcome']} after {paid['settlement']['attempts']} attempts)")
        for warning in paid["warnings"]:
            print(f"   ⚠️  {warning['code']}: {warning['message']}")

        print("\n" + "=" * 70)
        print("✅ Flow complete")

    except requests.exceptions.Timeout:
        print("❌ Timeout - gateway took too long to respond")
    except requests.exceptions.ConnectionError:
        print("❌ Connection error - is the gateway running?")
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python smoke_flow.py <amount in minor units> [gateway url]")
        print("\nExample:")
        print("  python smoke_flow.py 1500")
        sys.exit(1)

    run_flow(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else "http://localhost:3001")
