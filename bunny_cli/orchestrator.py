"""Command orchestrator - runs one import, migration or bootstrap flow end to end."""

import csv
import json
import logging
import tempfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .client import GraphQLErrors, Ok, PlatformClient, QueryResult, TransportError
from .exceptions import BootstrapError, BunnyCLIError, InputFileError, MissingResourceError, RecordError
from .extractors.csv_extractor import CSVExtractor, JSONDocumentExtractor
from .extractors.platform_extractor import PlatformExtractor
from .extractors.stripe_extractor import StripeExtractor
from .extractors.web_scraper import WebsiteExtractor
from .loaders.base import ProgressFn, describe_error
from .loaders.platform_loader import PlatformLoader, account_identifier, contact_identifier
from .models.migration import AccountCache, CommandResult, Profile
from .models.record import ImportBatchResult, RecordResult, SourceRecord
from .models.schema import ImportProduct
from .models.subscription import SubscriptionAttributes
from .services.attribute_mapper import AttributeMapper
from .services.branding import normalize_domain, resolve_url, sanitize_color
from .services.llm_inference import BrandingAnalyzer
from .services.stripe_transformer import StripeProductTransformer, StripeSubscriptionTransformer
from .services.subscription_builder import SubscriptionRowBuilder, subscription_identifier
from .services.transformer import InstanceProductTransformer
from .services.validator import RecordValidator

logger = logging.getLogger(__name__)


ConfirmFn = Callable[[str], bool]
ChooseFn = Callable[[str, List[Tuple[str, Any]]], Any]

SCRATCH_DIR_NAME = "bunny-stripe-migration"
OUTPUT_COLUMNS = ("Bunny Account ID", "Bunny Subscription ID", "Import Status")

NO_RESPONSE_HINT = [
    "No response received. Possible causes:",
    "  - The base URL is incorrect or unreachable",
    "  - A network or TLS error occurred",
    "  - The OAuth token endpoint returned an empty body",
]


def product_identifier(product: Dict[str, Any]) -> str:
    return product.get("name") or "Unknown"


def diagnose(result: QueryResult) -> Tuple[bool, List[str]]:
    """
    Classify the outcome of the connectivity probe.

    Returns whether the credentials work and the lines to show the operator.
    """
    if isinstance(result, Ok):
        products = result.data.get("products")
        if not isinstance(products, dict):
            return False, [
                "Unexpected response structure from API.",
                json.dumps(result.data, indent=2, default=str),
            ]
        return True, [
            "API credentials are valid.",
            f"Products visible to this client: {products.get('totalCount', 0)}",
        ]

    lines = ["API check failed - credentials may be invalid or the instance unreachable."]
    if isinstance(result, GraphQLErrors):
        lines.extend(f"GraphQL error: {message}" for message in result.messages)
    elif result.raw is None:
        lines.extend(NO_RESPONSE_HINT)
    elif isinstance(result.raw, str):
        lines.append(f"OAuth error: {result.raw}")
    else:
        lines.append("Error detail:")
        lines.append(json.dumps(result.raw, indent=2, default=str))
    lines.append('Run "bunny configure" to update credentials for this profile.')
    return False, lines


class MigrationOrchestrator:
    """
    Runs the command flows against one destination instance.

    Handles:
    - Reading and counting input files
    - Mapping, validating and transforming source records
    - Confirmation before any write
    - Sequential submission through the batch executor
    - Scratch snapshots for provider migrations

    One orchestrator serves one command run; the account cache and scratch
    directory live on it.
    """

    def __init__(
        self,
        profile: Profile,
        confirm: ConfirmFn,
        choose: Optional[ChooseFn] = None,
        client: Optional[PlatformClient] = None,
        scratch_dir: Optional[Path] = None,
        today: Optional[date] = None,
        progress_callback: Optional[ProgressFn] = None,
        dry_run: bool = False
    ):
        """
        Initialize the orchestrator.

        Args:
            profile: Destination profile
            confirm: Asks a yes/no question before any write
            choose: Asks the operator to pick one of (label, value) choices
            client: Destination client (built from the profile when omitted)
            scratch_dir: Where provider snapshots are written
            today: Reference date for subscription trial rules
            progress_callback: Called with (done, total) after every record
            dry_run: Report records as loaded without submitting them
        """
        self.profile = profile
        self.confirm = confirm
        self.choose = choose or (lambda message, choices: choices[0][1])
        self.today = today
        self.progress_callback = progress_callback
        self.dry_run = dry_run

        self._client = client
        self._loader: Optional[PlatformLoader] = None

        # Per-run state
        self.account_cache = AccountCache()

        self._setup_directories(scratch_dir)

    def _setup_directories(self, scratch_dir: Optional[Path]):
        """Resolve the scratch directory; it is created on first write."""
        self.scratch_dir = Path(scratch_dir) if scratch_dir else Path(tempfile.gettempdir()) / SCRATCH_DIR_NAME

    @property
    def client(self) -> PlatformClient:
        if self._client is None:
            self._client = PlatformClient.from_profile(self.profile)
        return self._client

    @property
    def loader(self) -> PlatformLoader:
        if self._loader is None:
            self._loader = PlatformLoader(self.client, dry_run=self.dry_run)
        return self._loader

    def _cancelled(self, command: str) -> CommandResult:
        logger.info("Ok, import canceled")
        return CommandResult(command=command, cancelled=True)

    def _log_batch(self, batch: ImportBatchResult) -> None:
        logger.info(
            f"Import {batch.status.value}: {batch.success_count} succeeded, "
            f"{batch.error_count} failed, {batch.total_count} total"
        )

    # Imports

    def import_accounts(self, file_path: str) -> CommandResult:
        """Import one account per CSV row."""
        logger.info("=== PHASE 1: EXTRACTION ===")
        records = list(CSVExtractor(file_path).iter_rows())

        if not self.confirm(f"Are you sure you want to import {len(records)} account(s)?"):
            return self._cancelled("import accounts")

        logger.info("=== PHASE 2: MAPPING ===")
        mapped = AttributeMapper.for_accounts().map(records)

        logger.info("=== PHASE 3: LOADING ===")
        batch = self.loader.load_batch(
            [m.attributes for m in mapped],
            self.loader.create_account,
            identify=account_identifier,
            progress_callback=self.progress_callback,
        )
        self._log_batch(batch)
        return CommandResult(command="import accounts", batch=batch)

    def import_contacts(self, file_path: str) -> CommandResult:
        """Import contacts, skipping rows without an account reference or first name."""
        logger.info("=== PHASE 1: EXTRACTION ===")
        records = list(CSVExtractor(file_path).iter_rows())

        logger.info("=== PHASE 2: MAPPING AND VALIDATION ===")
        mapped = AttributeMapper.for_contacts().map(records)
        outcome = RecordValidator().validate_contacts(mapped)

        result = CommandResult(command="import contacts", skipped=outcome.skipped)
        if not outcome.records:
            logger.error("No valid contacts to import")
            result.messages.append("No valid contacts to import")
            result.failed = True
            return result

        if not self.confirm(f"Proceed with importing {len(outcome.records)} contact(s)?"):
            cancelled = self._cancelled(result.command)
            cancelled.skipped = outcome.skipped
            return cancelled

        logger.info("=== PHASE 3: LOADING ===")
        result.batch = self.loader.load_batch(
            [r.attributes for r in outcome.records],
            self.loader.create_contact,
            identify=contact_identifier,
            progress_callback=self.progress_callback,
        )
        self._log_batch(result.batch)
        return result

    def import_subscriptions(self, file_path: str, output_path: Optional[str] = None) -> CommandResult:
        """
        Import one subscription per CSV row.

        Every processed row is appended to an output CSV with the created
        account and subscription ids and an import status, so failed rows
        can be re-run on their own.
        """
        logger.info("=== PHASE 1: EXTRACTION ===")
        extractor = CSVExtractor(file_path)
        headers = extractor.headers()
        row_count = extractor.count_rows()
        logger.info(f"Found {row_count} subscription rows in {file_path}")

        if not self.confirm("Are you sure you want to do this?"):
            return self._cancelled("import subscriptions")

        if output_path is None:
            timestamp = datetime.utcnow().strftime("%Y%m%dT%H%M%SZ")
            output_path = str(Path.cwd() / f"subscriptions_output_{timestamp}.csv")

        builder = SubscriptionRowBuilder(self.account_cache, today=self.today)

        def build_one(record: SourceRecord) -> SubscriptionAttributes:
            attributes = builder.build(record)
            if attributes is None:
                raise RecordError(builder.last_rejection or "Invalid subscription row")
            return attributes

        def submit_one(record: SourceRecord) -> Dict[str, Any]:
            attributes = build_one(record)
            subscription = self.loader.create_subscription(attributes)
            account_id = (subscription.get("account") or {}).get("id")
            self.account_cache.remember(record.get("Account ID"), account_id)
            return subscription

        logger.info("=== PHASE 2: TRANSFORMATION AND LOADING ===")
        with open(output_path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=headers + list(OUTPUT_COLUMNS), extrasaction="ignore")
            writer.writeheader()

            def write_output(record: SourceRecord, result: RecordResult) -> None:
                entity = result.entity or {}
                row = dict(record.data)
                row["Bunny Account ID"] = (entity.get("account") or {}).get("id", "")
                row["Bunny Subscription ID"] = entity.get("id", "")
                row["Import Status"] = "Success" if result.success else "Failed"
                writer.writerow(row)
                f.flush()

            batch = self.loader.load_batch(
                extractor.iter_rows(),
                submit_one,
                identify=subscription_identifier,
                total=row_count,
                progress_callback=self.progress_callback,
                on_result=write_output,
                validate_one=build_one,
            )

        self._log_batch(batch)
        logger.info(f"Wrote import log to {output_path}")
        return CommandResult(
            command="import subscriptions",
            batch=batch,
            artifacts={"output": output_path},
        )

    def import_products(self, file_path: str) -> CommandResult:
        """Import a `{ "products": [...] }` document, one productImport call per product."""
        logger.info("=== PHASE 1: EXTRACTION ===")
        products = JSONDocumentExtractor(file_path, "products").load()["products"]

        logger.info("=== PHASE 2: VALIDATION ===")
        for index, product in enumerate(products, start=1):
            try:
                ImportProduct.model_validate(product)
            except ValidationError as e:
                raise InputFileError(
                    f"Product {index} in {file_path} does not match the import schema: {e}"
                ) from e

        if not self.confirm("Are you sure you want to do this?"):
            return self._cancelled("import products")

        logger.info("=== PHASE 3: LOADING ===")
        batch = self._load_products(products)
        return CommandResult(command="import products", batch=batch)

    def import_mrr(self, file_path: str) -> CommandResult:
        """Send a recurring revenue CSV as-is, as a batch of one."""
        source = CSVExtractor(file_path).read_text()

        if not self.confirm("Are you sure you want to do this?"):
            return self._cancelled("import mrr")

        batch = self.loader.load_batch(
            [source],
            self.loader.import_mrr,
            identify=lambda _: Path(file_path).name,
            progress_callback=self.progress_callback,
        )
        self._log_batch(batch)
        return CommandResult(command="import mrr", batch=batch)

    def _load_products(self, products: List[Dict[str, Any]]) -> ImportBatchResult:
        batch = self.loader.load_batch(
            products,
            lambda product: self.loader.import_products({"products": [product]}),
            identify=product_identifier,
            progress_callback=self.progress_callback,
        )
        self._log_batch(batch)
        return batch

    # Migrations

    def migrate_bunny(self, source_client: PlatformClient) -> CommandResult:
        """Copy one product, with its plans, price lists and charges, from another instance."""
        command = "migrate bunny"
        source = PlatformExtractor(source_client)

        logger.info("=== PHASE 1: EXTRACTION ===")
        products = source.list_products()
        logger.info(f"Found {len(products)} products")
        if not products:
            raise MissingResourceError("No products found in source instance")

        product_id = self.choose(
            "Select a product to migrate:",
            [(p.get("name") or p["id"], p["id"]) for p in products],
        )
        product = source.get_product(product_id=product_id)
        if not product:
            raise MissingResourceError(f"Product {product_id} not found in source instance")

        logger.info("=== PHASE 2: TRANSFORMATION ===")
        platforms = PlatformExtractor(self.client).list_platforms()
        document = InstanceProductTransformer(platforms).transform(product).to_import_dict()
        artifacts = {
            "source": self._save_json("bunny_source_product.json", product),
            "import": self._save_json("bunny_import_product.json", document),
        }
        logger.debug(f"Transformed import data: {json.dumps(document, indent=2)}")

        if not self.confirm(
            f"Are you sure you want to import product '{product['name']}' to the destination instance?"
        ):
            result = self._cancelled(command)
            result.artifacts = artifacts
            return result

        logger.info("=== PHASE 3: LOADING ===")
        batch = self._load_products(document["products"])
        return CommandResult(command=command, batch=batch, artifacts=artifacts)

    def migrate_stripe_products(self, stripe_key: str) -> CommandResult:
        """Import a Stripe catalog as one "Imported from Stripe" product."""
        command = "migrate stripe products"
        artifacts: Dict[str, str] = {}
        try:
            logger.info("=== PHASE 1: EXTRACTION ===")
            catalog = StripeExtractor(stripe_key).fetch_catalog()
            artifacts["stripe"] = self._save_json("stripe_products.json", catalog)

            logger.info("=== PHASE 2: TRANSFORMATION ===")
            platforms = PlatformExtractor(self.client).list_platforms()
            if not platforms:
                raise MissingResourceError("No platforms found in the destination instance")
            transformer = StripeProductTransformer(catalog, platforms[0]["id"])
            document = transformer.transform().to_import_dict()
            artifacts["bunny"] = self._save_json("bunny_products.json", document)
        except (BunnyCLIError, TransportError):
            self._report_scratch(artifacts)
            raise

        result = CommandResult(command=command, skipped=transformer.skipped, artifacts=artifacts)
        if not self.confirm("Are you sure you want to do this?"):
            cancelled = self._cancelled(command)
            cancelled.artifacts = artifacts
            return cancelled

        logger.info("=== PHASE 3: LOADING ===")
        result.batch = self._load_products(document["products"])
        if result.exit_code:
            self._report_scratch(artifacts)
        return result

    def migrate_stripe_subscriptions(self, stripe_key: str) -> CommandResult:
        """Create one subscription per active Stripe subscription item."""
        command = "migrate stripe subscriptions"
        artifacts: Dict[str, str] = {}
        try:
            logger.info("=== PHASE 1: EXTRACTION ===")
            data = StripeExtractor(stripe_key).fetch_subscription_data()
            artifacts["stripe"] = self._save_json("stripe_subscriptions.json", data)
            logger.info(
                f"Found in Stripe: {len(data['customers'])} customers, "
                f"{len(data['subscriptions'])} active subscriptions"
            )

            logger.info("=== PHASE 2: TRANSFORMATION ===")
            outcome = StripeSubscriptionTransformer(data).transform()
            artifacts["bunny"] = self._save_json(
                "bunny_subscriptions.json", [s.to_dict() for s in outcome.records]
            )
        except (BunnyCLIError, TransportError):
            self._report_scratch(artifacts)
            raise

        result = CommandResult(command=command, skipped=outcome.skipped, artifacts=artifacts)
        if not self.confirm(f"Are you sure you want to import {len(outcome.records)} subscriptions?"):
            cancelled = self._cancelled(command)
            cancelled.skipped = outcome.skipped
            cancelled.artifacts = artifacts
            return cancelled

        logger.info("=== PHASE 3: LOADING ===")
        result.batch = self.loader.load_batch(
            outcome.records,
            self.loader.create_subscription,
            identify=lambda s: s.identifier,
            progress_callback=self.progress_callback,
        )
        self._log_batch(result.batch)
        if result.exit_code:
            self._report_scratch(artifacts)
        return result

    def _save_json(self, name: str, data: Any) -> str:
        """Save a snapshot to the scratch directory."""
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        path = self.scratch_dir / name
        with open(path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        logger.debug(f"Saved {path}")
        return str(path)

    def _report_scratch(self, artifacts: Dict[str, str]) -> None:
        if artifacts:
            logger.warning(f"Debug files preserved at: {self.scratch_dir} ({', '.join(artifacts.values())})")

    # Diagnostics

    def doctor(self) -> CommandResult:
        """Check the profile's credentials with a one-product query."""
        logger.info(f"Diagnosing profile {self.profile.name} at {self.profile.base_url}")
        ok, lines = diagnose(PlatformExtractor(self.client).probe())
        return CommandResult(command="doctor", messages=lines, failed=not ok)

    # Bootstrap

    def bootstrap(self, domain: str, analyzer: BrandingAnalyzer) -> CommandResult:
        """
        Apply a company's website branding to one entity.

        Scrapes the site, asks the LLM for logo and colors, rewrites the
        entity's email template, then uploads the logo to both branding
        slots and updates the entity. Every step after the site fetch is
        fatal on failure.
        """
        command = "bootstrap"
        domain = normalize_domain(domain)
        website = WebsiteExtractor(domain)

        logger.info("=== PHASE 1: BRANDING ANALYSIS ===")
        extraction = website.extract()
        for warning in extraction.warnings:
            logger.warning(warning)
        meta = extraction.records[0]

        branding = self._bootstrap_step("analyze domain", analyzer.analyze_branding, domain, meta)
        logo_url = resolve_url(domain, branding.get("logoUrl"))
        brand_color = sanitize_color(branding.get("brandColor"))
        accent_color = sanitize_color(branding.get("accentColor"))
        logger.info(f"Branding: logo={logo_url} brand={brand_color} accent={accent_color}")

        logger.info("=== PHASE 2: ENTITY SELECTION ===")
        entities = self._bootstrap_step("fetch entities", PlatformExtractor(self.client).list_entities)
        logger.info(f"Found {len(entities)} entity/entities")
        if not entities:
            raise MissingResourceError("No entities found in this Bunny instance.")
        entity_id = self.choose(
            "Select the entity to apply branding to:",
            [(e.get("name") or e["id"], e["id"]) for e in entities],
        )
        entity = next(e for e in entities if e["id"] == entity_id)

        logger.info("=== PHASE 3: EMAIL TEMPLATE AND LOGO ===")
        email_template = self._bootstrap_step(
            "generate email template",
            analyzer.generate_email_template,
            entity.get("emailTemplate"),
            logo_url,
            brand_color,
            accent_color,
            domain,
        )
        if not logo_url:
            raise BootstrapError("Failed to download logo: no logo URL was found")
        logo, mime_type = self._bootstrap_step("download logo", website.download_image, logo_url)

        logger.info(
            f"Planned changes: entity '{entity.get('name')}', logo {logo_url} (nav + document), "
            f"brand color #{brand_color or 'n/a'}, accent color #{accent_color or 'n/a'}, "
            "email template updated with brand colors and logo"
        )
        if not self.confirm("Apply these changes?"):
            logger.info("Cancelled.")
            return CommandResult(command=command, cancelled=True)

        logger.info("=== PHASE 4: APPLY ===")
        if not self.dry_run:
            for label, name in (("nav logo", "top_nav_image"), ("document image", "quote_image")):
                self._bootstrap_step(
                    f"upload {label}", self.loader.upload_branding_image, entity["id"], name, logo, mime_type
                )

        attributes: Dict[str, Any] = {}
        if brand_color:
            attributes["brandColor"] = brand_color
        if accent_color:
            attributes["accentColor"] = accent_color
        if email_template:
            attributes["emailTemplate"] = email_template

        if not self.dry_run:
            self._bootstrap_step("update entity", self.loader.update_entity, entity["id"], attributes)

        message = (
            f"Bootstrap complete! Entity '{entity.get('name')}' has been updated "
            f"with branding from {domain}."
        )
        logger.info(message)
        return CommandResult(
            command=command,
            messages=[message],
            artifacts={"logo_url": logo_url or ""},
        )

    @staticmethod
    def _bootstrap_step(label: str, step: Callable[..., Any], *args: Any) -> Any:
        try:
            return step(*args)
        except Exception as e:
            logger.error(f"Failed to {label}: {describe_error(e)}")
            raise BootstrapError(f"Failed to {label}: {describe_error(e)}") from e
