from orchid_apphost.demo.host import main

raise SystemExit(main())
