from section_crawler.cli import main

raise SystemExit(main())
