"""
CLI utility to mint session tokens for local testing of the MCP server.

In a deployed setup the identity provider signs users in (GitHub OAuth) and
hands out session tokens. Locally this script stands in for that step: it
signs a token with the same key the server's JWTSessionProvider verifies.

Usage examples:

    # Session for alice, valid for 8 hours (default secret)
    uv run python -m scripts.generate_token --sub alice

    # Custom lifetime
    uv run python -m scripts.generate_token --sub ci-agent --exp-hours 2

    # Custom secret (must match MCP_JWT_SECRET_KEY on the server)
    uv run python -m scripts.generate_token --sub alice --secret my-prod-secret

    # Expired session (the gate answers 401)
    uv run python -m scripts.generate_token --sub alice --exp-hours -1

Or with Claude Code:

    claude mcp add --transport http weather http://localhost:8080/mcp \\
      --header "Authorization: Bearer <token>"
"""

import argparse
import datetime

import jwt


def generate_token(
    subject: str,
    secret: str,
    algorithm: str = "HS256",
    exp_hours: float = 8.0,
) -> str:
    """
    Sign a session token for `subject`.

    Args:
        subject: The "sub" claim, the user/account the session belongs to
        secret: The signing key (must match the server's MCP_JWT_SECRET_KEY)
        algorithm: JWT signing algorithm (default: HS256)
        exp_hours: Hours until expiration (negative = already expired)
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + datetime.timedelta(hours=exp_hours),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate session tokens for the weather MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --sub alice
  %(prog)s --sub alice --exp-hours -1
  %(prog)s --sub alice --secret my-secret
        """,
    )
    parser.add_argument("--sub", required=True, help="Subject: who the session belongs to")
    parser.add_argument(
        "--secret",
        default="dev-secret-change-me",
        help="Signing secret (must match server's MCP_JWT_SECRET_KEY)",
    )
    parser.add_argument("--algorithm", default="HS256", help="JWT signing algorithm (default: HS256)")
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until the session expires (negative = already expired, default: 8)",
    )

    args = parser.parse_args()

    token = generate_token(
        subject=args.sub,
        secret=args.secret,
        algorithm=args.algorithm,
        exp_hours=args.exp_hours,
    )

    print(f"Subject:    {args.sub}")
    print(f"Expires in: {args.exp_hours}h")
    print()
    print(f"Token: {token}")
    print()
    print("Usage with curl (initialize MCP session):")
    print('  curl -X POST http://localhost:8080/mcp \\')
    print('    -H "Content-Type: application/json" \\')
    print('    -H "Accept: application/json, text/event-stream" \\')
    print(f'    -H "Authorization: Bearer {token}" \\')
    print(
        '    -d \'{"jsonrpc":"2.0","id":1,"method":"initialize",'
        '"params":{"protocolVersion":"2025-03-26","capabilities":{},'
        '"clientInfo":{"name":"test","version":"1.0"}}}\''
    )


if __name__ == "__main__":
    main()
