#!/usr/bin/env python3
"""
SealedKYC Command Line Interface

Usage:
    sealedkyc keygen --private <file> --trust <file>
    sealedkyc commitment --handle <hex> [--handle <hex> ...] --identity <id>
    sealedkyc sign-response --key <file> --correlation-id <n> --value <n>
    sealedkyc serve
    sealedkyc demo
"""

import argparse
import json
import sys


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def cmd_keygen(args):
    """Generate an Ed25519 oracle key pair and its trust file."""
    from nacl.signing import SigningKey
    from sealedkyc.config import write_oracle_keys
    from sealedkyc.util import b64e

    sk = SigningKey.generate()
    write_oracle_keys(b64e(bytes(sk)), b64e(bytes(sk.verify_key)), args.kid, args.private, args.trust)
    print(f"Oracle signing key saved to: {args.private}", file=sys.stderr)
    print(f"Oracle trust file saved to: {args.trust}", file=sys.stderr)
    return 0


def cmd_commitment(args):
    """Compute the state commitment for an ordered handle list."""
    from sealedkyc.handles import CiphertextHandle
    from sealedkyc.hashing import state_commitment

    handles = [CiphertextHandle.from_hex(h) for h in args.handle]
    print(state_commitment(handles, args.identity))
    return 0


def cmd_sign_response(args):
    """Sign an oracle response (oracle-side tool)."""
    from nacl.signing import SigningKey
    from sealedkyc.hashing import proof_message
    from sealedkyc.oracle import encode_uint256s
    from sealedkyc.util import b64d, b64e

    key = load_json(args.key)
    sk = SigningKey(b64d(key["private_key_b64"]))
    cleartexts = encode_uint256s(args.value)
    proof = sk.sign(proof_message(args.correlation_id, cleartexts)).signature
    print(json.dumps({
        "correlation_id": args.correlation_id,
        "cleartexts_hex": cleartexts.hex(),
        "proof_b64": b64e(proof),
    }, indent=2))
    return 0


def cmd_serve(args):
    """Run the HTTP API."""
    from sealedkyc.api import main as serve

    serve()
    return 0


def cmd_demo(args):
    """Run an end-to-end demonstration with an in-process oracle."""
    from sealedkyc import IntegrityError, LocalDecryptionOracle, ManualClock, SealedKYCService

    print("=" * 60)
    print("SealedKYC Demonstration")
    print("=" * 60)

    clock = ManualClock(start=1_000)
    oracle = LocalDecryptionOracle()
    service = SealedKYCService(owner="owner", oracle=oracle, clock=clock)
    service.add_provider("owner", "provider-1")

    record = service.submit("provider-1", "alice", oracle.encrypt(25), oracle.encrypt(1))
    print(f"\nSubmitted alice into batch {record.batch_id}")

    correlation_id = service.request_verification("provider-1", record.batch_id, "alice")
    context = service.get_decryption_context(correlation_id)
    print(f"Requested decryption {correlation_id}")
    print(f"  Commitment: {context.commitment}")

    disclosure = oracle.fulfill(correlation_id)
    print(f"Oracle answered: age={disclosure.value}")

    cleartexts, proof = oracle.respond(correlation_id)
    try:
        service.on_oracle_response(correlation_id, cleartexts, proof)
    except IntegrityError as e:
        print(f"Replay refused: {e.code.value}")

    print("\nEvents:")
    for event in service.events.query():
        print(f"  #{event.seq} {event.kind.value} {event.payload}")

    print("\n" + "=" * 60)
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="SealedKYC CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sealedkyc demo
  sealedkyc keygen -p secrets/oracle_signing_key.json -t trust/oracle_key.json
  sealedkyc commitment -H 0xab12... -i sealedkyc-service-001
  sealedkyc sign-response -k secrets/oracle_signing_key.json -c 1 -v 25
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate oracle key pair")
    keygen_parser.add_argument("-p", "--private", default="secrets/oracle_signing_key.json",
                               help="Output file for the signing key")
    keygen_parser.add_argument("-t", "--trust", default="trust/oracle_key.json",
                               help="Output file for the trust file")
    keygen_parser.add_argument("-k", "--kid", default="oracle-01", help="Key identifier")

    commit_parser = subparsers.add_parser("commitment", help="Compute a state commitment")
    commit_parser.add_argument("-H", "--handle", action="append", required=True,
                               help="Handle hex, in disclosure order (repeatable)")
    commit_parser.add_argument("-i", "--identity", required=True, help="Service identity")

    sign_parser = subparsers.add_parser("sign-response", help="Sign an oracle response")
    sign_parser.add_argument("-k", "--key", required=True, help="Oracle signing key JSON file")
    sign_parser.add_argument("-c", "--correlation-id", type=int, required=True, help="Correlation id")
    sign_parser.add_argument("-v", "--value", type=int, action="append", required=True,
                             help="Cleartext value (repeatable)")

    subparsers.add_parser("serve", help="Run the HTTP API")
    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args()

    if args.command == "keygen":
        sys.exit(cmd_keygen(args))
    elif args.command == "commitment":
        sys.exit(cmd_commitment(args))
    elif args.command == "sign-response":
        sys.exit(cmd_sign_response(args))
    elif args.command == "serve":
        sys.exit(cmd_serve(args))
    elif args.command == "demo":
        sys.exit(cmd_demo(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
