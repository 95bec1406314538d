"""
Scan Services

Organized by responsibility. Read this before adding an engine or touching
the runner.

1. discovery/ - URL enumeration
   - sitemap_discovery.py: sitemap (and sitemap index) -> ordered page URLs, once per scan

2. auditing/ - one engine, one URL
   - base.py: PageAuditor contract (setup failure = fatal, audit failure = page error)
   - axe_auditor.py: axe-core in headless Chrome via Selenium
   - lighthouse_auditor.py: Lighthouse CLI subprocess
   - combined_auditor.py: several engines on the same page (scan type `both`)
   - registry.py: scan type -> auditor; register_auditor() to add engines

3. aggregation/
   - result_aggregator.py: folds PageResults into the checkpoint (average, worst page, sums)

4. progress/
   - progress_store.py: checkpoint save/load/clear, one guarded UPDATE per save

5. timeout/
   - timeout_guard.py: time budget, checked between pages only

6. scan/ - job lifecycle
   - state_machine.py: allowed status transitions
   - scan_repository.py: the only writer of ScanJob.status (worker side)
   - scan.py: async operations behind the HTTP routes

7. orchestration/
   - multi_page_runner.py: sequential page loop; pause / cancel / fail / complete

"""
