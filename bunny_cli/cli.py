"""Command-line interface for bunny-cli."""

import argparse
import getpass
import logging
import os
import sys
from typing import Any, List, Optional, Tuple

from .client import PlatformClient, TransportError, format_base_url
from .exceptions import BunnyCLIError, ConfigurationError
from .loaders.base import describe_error
from .models.migration import CommandResult, LLMProvider, Profile
from .models.record import BatchStatus
from .orchestrator import MigrationOrchestrator
from .services.llm_inference import DEFAULT_MODELS, BrandingAnalyzer
from .services.profile_store import ProfileStore, mask_key, masked_profile

logger = logging.getLogger(__name__)


STRIPE_KEY_ENV = "STRIPE_SECRET_KEY"
LLM_KEY_ENV = {
    LLMProvider.OPENAI: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
}

MAX_SKIPPED_SHOWN = 20
PARTIAL_ERRORS_SHOWN = 10
FAILED_ERRORS_SHOWN = 20


# Prompts

def prompt_confirm(message: str) -> bool:
    answer = input(f"{message} [y/N]: ").strip().lower()
    return answer in ("y", "yes")


def prompt_text(message: str, default: Optional[str] = None) -> str:
    suffix = f" [{default}]" if default else ""
    answer = input(f"{message}{suffix}: ").strip()
    return answer or (default or "")


def prompt_secret(message: str) -> str:
    return getpass.getpass(f"{message}: ").strip()


def prompt_choice(message: str, choices: List[Tuple[str, Any]]) -> Any:
    """Show numbered choices and return the value of the one picked."""
    print(f"\n{message}")
    for i, (label, _) in enumerate(choices, 1):
        print(f"  {i}. {label}")

    while True:
        answer = input("Enter choice: ").strip()
        if answer.isdigit() and 1 <= int(answer) <= len(choices):
            return choices[int(answer) - 1][1]
        print("Invalid choice. Please try again.")


def print_progress(done: int, total: int) -> None:
    print(f"\r  Progress: {done}/{total}", end="", flush=True)
    if done >= total:
        print()


# Output

def print_result(result: CommandResult) -> None:
    """Print the operator summary of a command."""
    if result.cancelled:
        print("Ok, import canceled")
        return

    for line in result.messages:
        print(line)

    if result.skipped:
        print(f"\nSkipped {len(result.skipped)} record(s):")
        for skipped in result.skipped[:MAX_SKIPPED_SHOWN]:
            where = f"Row {skipped.row_number} " if skipped.row_number else ""
            print(f"  - {where}({skipped.identifier}): {skipped.reason}")
        if len(result.skipped) > MAX_SKIPPED_SHOWN:
            print(f"  ... and {len(result.skipped) - MAX_SKIPPED_SHOWN} more")

    batch = result.batch
    if batch is not None:
        print("\n" + "=" * 60)
        print(f"{result.command.upper()} COMPLETE")
        print("=" * 60)
        print(f"Status: {batch.status.value}")
        print(f"Succeeded: {batch.success_count}")
        print(f"Failed: {batch.error_count}")
        print(f"Total: {batch.total_count}")
        if batch.duration_seconds:
            print(f"Duration: {batch.duration_seconds:.2f} seconds")

        if batch.status == BatchStatus.PARTIAL:
            print("\nErrors:")
            for line in batch.error_lines(PARTIAL_ERRORS_SHOWN):
                print(f"  {line}")
        elif batch.status == BatchStatus.FAILED and batch.total_count:
            print("\nErrors:")
            for line in batch.error_lines(FAILED_ERRORS_SHOWN):
                print(f"  {line}")

    if result.artifacts:
        print("\nFiles:")
        for name, path in result.artifacts.items():
            print(f"  {name}: {path}")


# Credential resolution

def resolve_stripe_key(args, store: ProfileStore, profile: Profile) -> str:
    """
    Find the Stripe secret key.

    Order: --stripe-key, the profile (after confirmation), STRIPE_SECRET_KEY,
    then a prompt. A key typed in or passed on the command line may be saved
    to the profile.
    """
    key = args.stripe_key
    entered = bool(key)

    if not key and profile.stripe_secret_key:
        if prompt_confirm(f"Use existing Stripe key ({mask_key(profile.stripe_secret_key)})?"):
            key = profile.stripe_secret_key

    if not key:
        key = os.environ.get(STRIPE_KEY_ENV)

    if not key:
        key = prompt_secret("Enter your Stripe secret key")
        entered = True

    if not key or not key.startswith("sk_"):
        raise ConfigurationError("Invalid Stripe secret key - it must start with sk_")

    if entered and key != profile.stripe_secret_key:
        if prompt_confirm("Would you like to save this key for future use?"):
            store.update(profile.name, stripe_secret_key=key)
            print(f"Stripe key saved to profile '{profile.name}'.")

    return key


def resolve_analyzer(store: ProfileStore, profile: Profile) -> BrandingAnalyzer:
    """Build the branding analyzer from the profile, the environment or prompts."""
    if profile.llm_provider and profile.llm_api_key:
        print(f"Using saved LLM provider: {profile.llm_provider}")
        return BrandingAnalyzer(provider=profile.llm_provider, api_key=profile.llm_api_key)

    provider = prompt_choice(
        "Select LLM provider:",
        [
            (f"OpenAI ({DEFAULT_MODELS[LLMProvider.OPENAI]})", LLMProvider.OPENAI),
            (f"Anthropic ({DEFAULT_MODELS[LLMProvider.ANTHROPIC]})", LLMProvider.ANTHROPIC),
        ],
    )

    api_key = os.environ.get(LLM_KEY_ENV[provider])
    if not api_key:
        api_key = prompt_secret(f"Enter your {provider.value} API key")
        if not api_key:
            raise ConfigurationError("An LLM API key is required for bootstrap")
        store.update(profile.name, llm_provider=provider.value, llm_api_key=api_key)
        print("LLM provider saved to profile.")

    return BrandingAnalyzer(provider=provider.value, api_key=api_key)


def prompt_instance(label: str) -> Profile:
    """Ask for the credentials of an instance that has no saved profile."""
    print(f"\n{label} Instance Configuration")
    base_url = prompt_text(f"Enter {label.lower()} Bunny instance subdomain or URL")
    client_id = prompt_text(f"Enter {label.lower()} instance client ID")
    client_secret = prompt_secret(f"Enter {label.lower()} instance client secret")
    if not base_url:
        raise ConfigurationError(f"A {label.lower()} instance URL is required")
    return Profile(
        name=label.lower(),
        base_url=format_base_url(base_url),
        client_id=client_id,
        client_secret=client_secret,
    ).require_complete()


# Commands

def build_orchestrator(profile: Profile, args) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        profile.require_complete(),
        confirm=prompt_confirm,
        choose=prompt_choice,
        progress_callback=print_progress,
        dry_run=getattr(args, "dry_run", False),
    )


def run_configure(args, store: ProfileStore) -> int:
    """Create or update a profile interactively."""
    name = prompt_text("Profile name", default=args.profile or "default")
    profile = store.find(name) or Profile(name=name)

    profile.client_id = prompt_text("Client ID", default=profile.client_id)
    profile.client_secret = prompt_secret("Client secret") or profile.client_secret
    base_url = prompt_text("Base URL (subdomain or URL)", default=profile.base_url)
    profile.base_url = format_base_url(base_url) if base_url else None

    stripe_key = prompt_secret("Stripe secret key (optional, Enter to skip)")
    if stripe_key:
        if not stripe_key.startswith("sk_"):
            raise ConfigurationError("Invalid Stripe secret key - it must start with sk_")
        profile.stripe_secret_key = stripe_key

    provider = prompt_text("LLM provider for bootstrap (openai/anthropic, optional)", default=profile.llm_provider)
    if provider:
        try:
            profile.llm_provider = LLMProvider(provider.lower()).value
        except ValueError as e:
            raise ConfigurationError(f"Unsupported LLM provider: {provider}") from e
        profile.llm_api_key = prompt_secret("LLM API key") or profile.llm_api_key

    profile.require_complete()
    store.save(profile)
    print(f"Profile '{name}' saved to {store.path}")
    return 0


def run_profiles_inspect(args, store: ProfileStore) -> int:
    """Print a profile with its secrets masked."""
    profile = store.get(args.profile)
    print(f"\nProfile: {profile.name}")
    for key, value in masked_profile(profile).items():
        print(f"  {key}: {value}")
    return 0


def run_doctor(args, store: ProfileStore) -> int:
    """Check a profile's credentials."""
    profile = store.get(args.profile)
    print(f"\nDiagnosing profile: {profile.name}")
    print(f"  Base URL:  {profile.base_url}")
    print(f"  Client ID: {profile.client_id}")
    print()

    result = build_orchestrator(profile, args).doctor()
    print_result(result)
    return result.exit_code


def run_import(args, store: ProfileStore) -> int:
    """Import a CSV or JSON file into the profile's instance."""
    orchestrator = build_orchestrator(store.get(args.profile), args)

    if args.entity == "accounts":
        result = orchestrator.import_accounts(args.file)
    elif args.entity == "contacts":
        result = orchestrator.import_contacts(args.file)
    elif args.entity == "subscriptions":
        result = orchestrator.import_subscriptions(args.file, output_path=args.output)
    elif args.entity == "products":
        result = orchestrator.import_products(args.file)
    else:
        result = orchestrator.import_mrr(args.file)

    print_result(result)
    return result.exit_code


def run_migrate_stripe(args, store: ProfileStore) -> int:
    """Migrate Stripe products or subscriptions into the profile's instance."""
    profile = store.get(args.profile)
    stripe_key = resolve_stripe_key(args, store, profile)
    orchestrator = build_orchestrator(profile, args)

    if args.entity == "products":
        result = orchestrator.migrate_stripe_products(stripe_key)
    else:
        result = orchestrator.migrate_stripe_subscriptions(stripe_key)

    print_result(result)
    if result.exit_code:
        print(f"\nDebug files preserved at: {orchestrator.scratch_dir}")
    return result.exit_code


def run_migrate_bunny(args, store: ProfileStore) -> int:
    """Copy a product from one instance to another."""
    if args.source_profile:
        source = store.get(args.source_profile)
    else:
        source = prompt_instance("Source")

    if args.destination_profile:
        destination = store.get(args.destination_profile)
    else:
        destination = prompt_instance("Destination")

    orchestrator = build_orchestrator(destination, args)
    result = orchestrator.migrate_bunny(PlatformClient.from_profile(source))
    print_result(result)
    return result.exit_code


def run_bootstrap(args, store: ProfileStore) -> int:
    """Apply a company's website branding to an entity."""
    profile = store.get(args.profile)
    analyzer = resolve_analyzer(store, profile)

    domain = args.domain or prompt_text("Enter the customer's domain (e.g. acme.com)")
    if not domain:
        raise ConfigurationError("A domain is required")

    result = build_orchestrator(profile, args).bootstrap(domain, analyzer)
    if result.cancelled:
        print("Cancelled.")
        return 0
    print_result(result)
    return result.exit_code


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with every command."""
    parser = argparse.ArgumentParser(
        prog="bunny",
        description="Bunny CLI - import and migrate billing data into a Bunny instance"
    )
    parser.add_argument("--config", help="Path to the profiles config file")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--profile", "-p", default="default", help="Profile name")
    common.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Configure
    configure_parser = subparsers.add_parser("configure", parents=[common], help="Create or update a profile")
    configure_parser.set_defaults(handler=run_configure)

    # Profiles
    profiles_parser = subparsers.add_parser("profiles", help="Manage profiles")
    profiles_sub = profiles_parser.add_subparsers(dest="profiles_command")
    inspect_parser = profiles_sub.add_parser("inspect", parents=[common], help="Show a profile")
    inspect_parser.set_defaults(handler=run_profiles_inspect)

    # Doctor
    doctor_parser = subparsers.add_parser("doctor", parents=[common], help="Check API credentials")
    doctor_parser.set_defaults(handler=run_doctor)

    # Import
    import_parser = subparsers.add_parser("import", help="Import data from a file")
    import_sub = import_parser.add_subparsers(dest="entity")
    for entity, help_text in (
        ("accounts", "Import accounts from a CSV file"),
        ("contacts", "Import contacts from a CSV file"),
        ("subscriptions", "Import subscriptions from a CSV file"),
        ("products", "Import products from a JSON file"),
        ("mrr", "Import recurring revenue from a CSV file"),
    ):
        entity_parser = import_sub.add_parser(entity, parents=[common], help=help_text)
        entity_parser.add_argument("--file", "-f", required=True, help="Path to the input file")
        entity_parser.add_argument("--dry-run", action="store_true", help="Simulate without changes")
        if entity == "subscriptions":
            entity_parser.add_argument("--output", help="Path of the per-row output CSV")
        entity_parser.set_defaults(handler=run_import)

    # Migrate
    migrate_parser = subparsers.add_parser("migrate", help="Migrate data from another system")
    migrate_sub = migrate_parser.add_subparsers(dest="source")

    stripe_parser = migrate_sub.add_parser("stripe", help="Migrate from Stripe")
    stripe_sub = stripe_parser.add_subparsers(dest="entity")
    for entity in ("products", "subscriptions"):
        entity_parser = stripe_sub.add_parser(entity, parents=[common], help=f"Migrate Stripe {entity}")
        entity_parser.add_argument("--stripe-key", help="Stripe secret key (sk_...)")
        entity_parser.add_argument("--dry-run", action="store_true", help="Simulate without changes")
        entity_parser.set_defaults(handler=run_migrate_stripe)

    bunny_parser = migrate_sub.add_parser("bunny", parents=[common], help="Copy a product between Bunny instances")
    bunny_parser.add_argument("--source-profile", help="Profile of the source instance")
    bunny_parser.add_argument("--destination-profile", help="Profile of the destination instance")
    bunny_parser.add_argument("--dry-run", action="store_true", help="Simulate without changes")
    bunny_parser.set_defaults(handler=run_migrate_bunny)

    # Bootstrap
    bootstrap_parser = subparsers.add_parser(
        "bootstrap", parents=[common], help="Apply branding from a domain to an entity"
    )
    bootstrap_parser.add_argument("--domain", help="Customer domain, e.g. acme.com")
    bootstrap_parser.set_defaults(handler=run_bootstrap)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        store = ProfileStore(args.config)
        exit_code = handler(args, store)
    except (BunnyCLIError, TransportError) as e:
        print(f"Error: {describe_error(e)}")
        logger.debug("Command failed", exc_info=True)
        exit_code = 1
    except KeyboardInterrupt:
        print("\nAborted.")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
